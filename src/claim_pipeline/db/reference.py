"""Reference data repositories: insurance context, analysis types, roles and knowledge chunks."""

import json
import uuid
from typing import Any, Iterable

from claim_pipeline.db.constants import APP_ROLES
from claim_pipeline.db.database import get_connection
from claim_pipeline.models.claim import AnalysisType, InsuranceContext, KnowledgeEntry


def _context_from_row(row) -> InsuranceContext:
    data = dict(row)
    data["is_active"] = bool(data.get("is_active", 1))
    return InsuranceContext(**data)


class ContextRepository:
    """Insurance conditions and other reference text used in report prompts."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def add_context(
        self, context_type: str, title: str, content: str, is_active: bool = True
    ) -> InsuranceContext:
        context_id = str(uuid.uuid4())
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO insurance_context (id, context_type, title, content, is_active)
                VALUES (?, ?, ?, ?, ?)
                """,
                (context_id, context_type, title, content, 1 if is_active else 0),
            )
            row = conn.execute(
                "SELECT * FROM insurance_context WHERE id = ?", (context_id,)
            ).fetchone()
        return _context_from_row(row)

    def list_active(self, context_ids: Iterable[str] | None = None) -> list[InsuranceContext]:
        """Active context entries, optionally restricted to the given IDs."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM insurance_context WHERE is_active = 1 ORDER BY created_at, rowid"
            ).fetchall()
        contexts = [_context_from_row(r) for r in rows]
        if context_ids is None:
            return contexts
        wanted = set(context_ids)
        return [c for c in contexts if c.id in wanted]

    def set_active(self, context_id: str, is_active: bool) -> None:
        with get_connection(self._db_path) as conn:
            cur = conn.execute(
                "UPDATE insurance_context SET is_active = ?, updated_at = datetime('now') WHERE id = ?",
                (1 if is_active else 0, context_id),
            )
            if cur.rowcount == 0:
                raise ValueError(f"Insurance context not found: {context_id}")


class AnalysisTypeRepository:
    """System prompts selectable for claim-level reports."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def add_analysis_type(
        self,
        name: str,
        system_prompt: str,
        description: str = "",
        created_by: str | None = None,
    ) -> AnalysisType:
        type_id = str(uuid.uuid4())
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO analysis_types (id, name, description, system_prompt, created_by)
                VALUES (?, ?, ?, ?, ?)
                """,
                (type_id, name, description, system_prompt, created_by),
            )
        return AnalysisType(id=type_id, name=name, description=description, system_prompt=system_prompt)

    def get_analysis_type(self, type_id: str) -> AnalysisType | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT id, name, description, system_prompt, is_active FROM analysis_types WHERE id = ?",
                (type_id,),
            ).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        return AnalysisType(**data)

    def list_active(self) -> list[AnalysisType]:
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, name, description, system_prompt, is_active
                FROM analysis_types WHERE is_active = 1 ORDER BY name
                """
            ).fetchall()
        return [AnalysisType(**{**dict(r), "is_active": True}) for r in rows]


class RoleRepository:
    """Application roles per user."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def get_roles(self, user_id: str) -> list[str]:
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                "SELECT role FROM user_roles WHERE user_id = ? ORDER BY role", (user_id,)
            ).fetchall()
        return [r["role"] for r in rows]

    def role_exists(self, role: str) -> bool:
        """True if at least one user holds role."""
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM user_roles WHERE role = ? LIMIT 1", (role,)
            ).fetchone()
        return row is not None

    def grant_role(self, user_id: str, role: str) -> None:
        """Grant a role; granting an existing role is a no-op."""
        if role not in APP_ROLES:
            raise ValueError(f"Unknown role: {role!r} (allowed: {', '.join(APP_ROLES)})")
        with get_connection(self._db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO user_roles (user_id, role) VALUES (?, ?)",
                (user_id, role),
            )


class KnowledgeRepository:
    """Embedded knowledge base chunks. Embeddings are stored as JSON arrays."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def insert_chunks(
        self,
        title: str,
        content: str,
        chunks: list[str],
        embeddings: list[list[float]],
        policy_types: list[str] | None = None,
        categories: list[str] | None = None,
        source_document: str | None = None,
        metadata: dict[str, Any] | None = None,
        created_by: str | None = None,
    ) -> list[str]:
        """Insert one row per chunk in a single transaction. Returns the new row IDs."""
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        ids: list[str] = []
        with get_connection(self._db_path) as conn:
            for index, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
                entry_id = str(uuid.uuid4())
                conn.execute(
                    """
                    INSERT INTO insurance_knowledge_base (
                        id, title, content, chunk_text, chunk_index, embedding,
                        policy_types, categories, source_document, metadata, created_by
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry_id,
                        title,
                        content,
                        chunk,
                        index,
                        json.dumps([float(x) for x in embedding]),
                        json.dumps(policy_types or []),
                        json.dumps(categories or []),
                        source_document,
                        json.dumps(metadata) if metadata is not None else None,
                        created_by,
                    ),
                )
                ids.append(entry_id)
        return ids

    def list_active_with_embeddings(self) -> list[tuple[KnowledgeEntry, list[float]]]:
        """Active chunks paired with their embedding vectors."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, title, chunk_text, chunk_index, embedding, policy_types,
                       categories, source_document, metadata
                FROM insurance_knowledge_base
                WHERE is_active = 1 AND embedding IS NOT NULL
                ORDER BY created_at, rowid
                """
            ).fetchall()
        result = []
        for r in rows:
            entry = KnowledgeEntry(
                id=r["id"],
                title=r["title"],
                chunk_text=r["chunk_text"],
                chunk_index=r["chunk_index"],
                policy_types=json.loads(r["policy_types"] or "[]"),
                categories=json.loads(r["categories"] or "[]"),
                source_document=r["source_document"],
                metadata=json.loads(r["metadata"]) if r["metadata"] else None,
            )
            result.append((entry, json.loads(r["embedding"])))
        return result
