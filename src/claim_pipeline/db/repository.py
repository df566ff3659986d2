"""Claim, document and report repositories: CRUD, status transitions and audit logging."""

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from claim_pipeline.db.constants import (
    ACTION_REPORT_CREATED,
    ACTION_REVIEWED,
    ACTION_STATUS_CHANGED,
    ACTION_TEXT_UPDATED,
    ACTION_UPLOADED,
    REPORT_SCOPE_CLAIM,
    REPORT_SCOPE_DOCUMENT,
)
from claim_pipeline.db.database import get_connection
from claim_pipeline.models.claim import (
    Claim,
    ClaimInput,
    Document,
    ProcessedDocument,
    Report,
    ReportContent,
)
from claim_pipeline.models.status import ClaimStatus, DocumentStatus, check_transition


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_audit(
    conn: sqlite3.Connection,
    document_id: str,
    claim_id: str | None,
    action: str,
    old_status: str | None = None,
    new_status: str | None = None,
    details: str | None = None,
    actor: str | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO document_audit_log
            (document_id, claim_id, action, old_status, new_status, details, actor)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (document_id, claim_id, action, old_status, new_status, details or "", actor),
    )


def _advance_status(
    conn: sqlite3.Connection,
    document_id: str,
    requested: DocumentStatus,
    actor: str | None = None,
    details: str | None = None,
) -> tuple[DocumentStatus, DocumentStatus]:
    """Move a document forward inside an open transaction.

    Returns (old_status, new_status). Staying on the same status is allowed
    and writes no audit entry.

    Raises:
        ValueError: If the document does not exist.
        InvalidTransitionError: If the move would go backward.
    """
    row = conn.execute(
        "SELECT claim_id, status FROM documents WHERE id = ?", (document_id,)
    ).fetchone()
    if row is None:
        raise ValueError(f"Document not found: {document_id}")
    old_status = DocumentStatus(row["status"])
    new_status = check_transition(document_id, old_status, requested)
    if new_status is old_status:
        return old_status, new_status
    conn.execute(
        "UPDATE documents SET status = ?, updated_at = datetime('now') WHERE id = ?",
        (new_status.value, document_id),
    )
    _write_audit(
        conn,
        document_id,
        row["claim_id"],
        ACTION_STATUS_CHANGED,
        old_status.value,
        new_status.value,
        details,
        actor,
    )
    return old_status, new_status


def _upsert_text(conn: sqlite3.Connection, document_id: str, column: str, text: str) -> None:
    """Create the processed_documents row lazily and set one text column."""
    conn.execute(
        f"""
        INSERT INTO processed_documents (document_id, {column}) VALUES (?, ?)
        ON CONFLICT(document_id) DO UPDATE SET
            {column} = excluded.{column},
            updated_at = datetime('now')
        """,
        (document_id, text),
    )


class ClaimRepository:
    """Repository for claim persistence."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def create_claim(self, claim_input: ClaimInput, created_by: str | None = None) -> Claim:
        """Insert a new claim with status ``new``.

        Raises:
            sqlite3.IntegrityError: If the claim number is already taken.
        """
        claim_id = _new_id()
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO claims (
                    id, claim_number, client_name, policy_number, claim_type, status, created_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    claim_id,
                    claim_input.claim_number,
                    claim_input.client_name,
                    claim_input.policy_number,
                    claim_input.claim_type,
                    ClaimStatus.NEW.value,
                    created_by,
                ),
            )
            row = conn.execute("SELECT * FROM claims WHERE id = ?", (claim_id,)).fetchone()
        return Claim(**dict(row))

    def get_claim(self, claim_id: str) -> Claim | None:
        """Fetch claim by ID."""
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM claims WHERE id = ?", (claim_id,)).fetchone()
        if row is None:
            return None
        return Claim(**dict(row))

    def list_claims(self, owner_id: str | None = None) -> list[Claim]:
        """List claims, newest first, optionally only those created by owner_id."""
        with get_connection(self._db_path) as conn:
            if owner_id is None:
                rows = conn.execute(
                    "SELECT * FROM claims ORDER BY created_at DESC, rowid DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM claims WHERE created_by = ? ORDER BY created_at DESC, rowid DESC",
                    (owner_id,),
                ).fetchall()
        return [Claim(**dict(r)) for r in rows]

    def update_claim_status(self, claim_id: str, new_status: ClaimStatus) -> None:
        with get_connection(self._db_path) as conn:
            cur = conn.execute(
                "UPDATE claims SET status = ?, updated_at = datetime('now') WHERE id = ?",
                (ClaimStatus(new_status).value, claim_id),
            )
            if cur.rowcount == 0:
                raise ValueError(f"Claim not found: {claim_id}")

    def get_claim_history(self, claim_id: str) -> list[dict[str, Any]]:
        """Get audit log entries for all documents of a claim."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, document_id, claim_id, action, old_status, new_status,
                       details, actor, created_at
                FROM document_audit_log
                WHERE claim_id = ?
                ORDER BY id ASC
                """,
                (claim_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def get_owner_counts(self, owner_id: str) -> dict[str, Any]:
        """Claim, report and per-status document counts for claims created by owner_id."""
        with get_connection(self._db_path) as conn:
            total_claims = conn.execute(
                "SELECT COUNT(*) FROM claims WHERE created_by = ?", (owner_id,)
            ).fetchone()[0]
            status_rows = conn.execute(
                """
                SELECT d.status AS status, COUNT(*) AS n
                FROM documents d JOIN claims c ON c.id = d.claim_id
                WHERE c.created_by = ?
                GROUP BY d.status
                """,
                (owner_id,),
            ).fetchall()
            total_reports = conn.execute(
                """
                SELECT COUNT(*) FROM reports r JOIN claims c ON c.id = r.claim_id
                WHERE c.created_by = ?
                """,
                (owner_id,),
            ).fetchone()[0]
        return {
            "total_claims": total_claims,
            "document_status_counts": {r["status"]: r["n"] for r in status_rows},
            "total_reports": total_reports,
        }


class DocumentRepository:
    """Repository for documents and their processed text.

    Every write that changes a document's status goes through
    ``_advance_status`` inside the same transaction as the text it produced,
    so a step commits its text and its status together or not at all.
    """

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def add_document(
        self,
        claim_id: str,
        file_name: str,
        file_path: str,
        file_size: int = 0,
        file_type: str | None = None,
        uploaded_by: str | None = None,
    ) -> Document:
        """Insert a document with status ``uploaded``; moves a ``new`` claim to ``in_progress``."""
        document_id = _new_id()
        with get_connection(self._db_path) as conn:
            claim = conn.execute("SELECT status FROM claims WHERE id = ?", (claim_id,)).fetchone()
            if claim is None:
                raise ValueError(f"Claim not found: {claim_id}")
            conn.execute(
                """
                INSERT INTO documents (
                    id, claim_id, file_name, file_path, file_size, file_type, status, uploaded_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document_id,
                    claim_id,
                    file_name,
                    file_path,
                    file_size,
                    file_type,
                    DocumentStatus.UPLOADED.value,
                    uploaded_by,
                ),
            )
            if claim["status"] == ClaimStatus.NEW.value:
                conn.execute(
                    "UPDATE claims SET status = ?, updated_at = datetime('now') WHERE id = ?",
                    (ClaimStatus.IN_PROGRESS.value, claim_id),
                )
            _write_audit(
                conn,
                document_id,
                claim_id,
                ACTION_UPLOADED,
                new_status=DocumentStatus.UPLOADED.value,
                details=file_name,
                actor=uploaded_by,
            )
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        return Document(**dict(row))

    def get_document(self, document_id: str) -> Document | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        if row is None:
            return None
        return Document(**dict(row))

    def list_documents(self, claim_id: str) -> list[Document]:
        """Documents of a claim in creation order (insertion order breaks ties)."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE claim_id = ? ORDER BY created_at ASC, rowid ASC",
                (claim_id,),
            ).fetchall()
        return [Document(**dict(r)) for r in rows]

    def delete_document(self, document_id: str) -> Document:
        """Delete a document; processed text and reports go with it."""
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
            if row is None:
                raise ValueError(f"Document not found: {document_id}")
            conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return Document(**dict(row))

    def get_processed(self, document_id: str) -> ProcessedDocument | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM processed_documents WHERE document_id = ?", (document_id,)
            ).fetchone()
        if row is None:
            return None
        data = dict(row)
        data.pop("id", None)
        return ProcessedDocument(**data)

    def record_ocr_result(self, document_id: str, text: str) -> DocumentStatus:
        """Store extracted text and set ``ocr_complete``."""
        with get_connection(self._db_path) as conn:
            _upsert_text(conn, document_id, "ocr_text", text)
            _, new_status = _advance_status(
                conn, document_id, DocumentStatus.OCR_COMPLETE, details=f"ocr_text chars={len(text)}"
            )
        return new_status

    def record_anonymized(self, document_id: str, text: str) -> DocumentStatus:
        """Store de-identified text and set ``anonymized``."""
        with get_connection(self._db_path) as conn:
            _upsert_text(conn, document_id, "anonymized_text", text)
            _, new_status = _advance_status(
                conn,
                document_id,
                DocumentStatus.ANONYMIZED,
                details=f"anonymized_text chars={len(text)}",
            )
        return new_status

    def record_cleaned(self, document_id: str, text: str) -> DocumentStatus:
        """Store cleaned text; advance to ``ready_for_review`` only from an earlier status."""
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT claim_id, status FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if row is None:
                raise ValueError(f"Document not found: {document_id}")
            _upsert_text(conn, document_id, "cleaned_text", text)
            current = DocumentStatus(row["status"])
            if current < DocumentStatus.READY_FOR_REVIEW:
                _, current = _advance_status(
                    conn,
                    document_id,
                    DocumentStatus.READY_FOR_REVIEW,
                    details=f"cleaned_text chars={len(text)}",
                )
            else:
                _write_audit(
                    conn,
                    document_id,
                    row["claim_id"],
                    ACTION_TEXT_UPDATED,
                    current.value,
                    current.value,
                    f"cleaned_text chars={len(text)}",
                )
        return current

    def record_approval(self, document_id: str, text: str, reviewer_id: str) -> ProcessedDocument:
        """Store the reviewer's final text and set ``approved``.

        Raises:
            ValueError: If the document is missing or not ``ready_for_review``.
        """
        reviewed_at = _utc_now()
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT claim_id, status FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if row is None:
                raise ValueError(f"Document not found: {document_id}")
            if row["status"] != DocumentStatus.READY_FOR_REVIEW.value:
                raise ValueError(
                    f"Document {document_id} is {row['status']}, expected ready_for_review"
                )
            conn.execute(
                """
                INSERT INTO processed_documents (document_id, reviewed_text, reviewed_by, reviewed_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    reviewed_text = excluded.reviewed_text,
                    reviewed_by = excluded.reviewed_by,
                    reviewed_at = excluded.reviewed_at,
                    updated_at = datetime('now')
                """,
                (document_id, text, reviewer_id, reviewed_at),
            )
            _advance_status(
                conn, document_id, DocumentStatus.APPROVED, actor=reviewer_id, details="approved"
            )
            _write_audit(
                conn,
                document_id,
                row["claim_id"],
                ACTION_REVIEWED,
                details=f"reviewed_text chars={len(text)}",
                actor=reviewer_id,
            )
            processed = conn.execute(
                "SELECT * FROM processed_documents WHERE document_id = ?", (document_id,)
            ).fetchone()
        data = dict(processed)
        data.pop("id", None)
        return ProcessedDocument(**data)

    def get_document_history(self, document_id: str) -> list[dict[str, Any]]:
        """Get audit log entries for a document."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, document_id, claim_id, action, old_status, new_status,
                       details, actor, created_at
                FROM document_audit_log
                WHERE document_id = ?
                ORDER BY id ASC
                """,
                (document_id,),
            ).fetchall()
        return [dict(r) for r in rows]


class ReportRepository:
    """Repository for analysis reports. Reports are never updated after insert."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path

    def create_report(
        self,
        claim_id: str,
        anchor_document_id: str,
        content: ReportContent,
        advance_document_ids: Iterable[str],
        scope: str = REPORT_SCOPE_DOCUMENT,
        generated_by: str | None = None,
        analysis_type_id: str | None = None,
        analysis_type_name: str | None = None,
    ) -> Report:
        """Insert a report and move its documents to ``report_generated`` in one transaction."""
        report_id = _new_id()
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO reports (
                    id, claim_id, document_id, scope, summary, relevance_analysis,
                    exclusions_analysis, recommendation, justification,
                    analysis_type_id, analysis_type_name, generated_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    report_id,
                    claim_id,
                    anchor_document_id,
                    scope,
                    content.summary,
                    content.relevance_analysis,
                    content.exclusions_analysis,
                    content.recommendation,
                    content.justification,
                    analysis_type_id,
                    analysis_type_name,
                    generated_by,
                ),
            )
            for document_id in advance_document_ids:
                _advance_status(
                    conn,
                    document_id,
                    DocumentStatus.REPORT_GENERATED,
                    actor=generated_by,
                    details=f"{scope} report {report_id}",
                )
            _write_audit(
                conn,
                anchor_document_id,
                claim_id,
                ACTION_REPORT_CREATED,
                details=f"{scope} report {report_id}",
                actor=generated_by,
            )
            row = conn.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
        return Report(**dict(row))

    def get_claim_report(self, claim_id: str) -> Report | None:
        """The claim-level (final) report, if one exists."""
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM reports WHERE claim_id = ? AND scope = ? ORDER BY created_at, rowid LIMIT 1",
                (claim_id, REPORT_SCOPE_CLAIM),
            ).fetchone()
        if row is None:
            return None
        return Report(**dict(row))

    def get_document_report(self, document_id: str) -> Report | None:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM reports WHERE document_id = ? AND scope = ? ORDER BY created_at, rowid LIMIT 1",
                (document_id, REPORT_SCOPE_DOCUMENT),
            ).fetchone()
        if row is None:
            return None
        return Report(**dict(row))

    def list_reports(self, claim_id: str) -> list[Report]:
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM reports WHERE claim_id = ? ORDER BY created_at, rowid",
                (claim_id,),
            ).fetchall()
        return [Report(**dict(r)) for r in rows]

    def count_reports(self, claim_id: str) -> int:
        with get_connection(self._db_path) as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM reports WHERE claim_id = ?", (claim_id,)
            ).fetchone()[0]
