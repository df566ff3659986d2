"""Knowledge base ingestion and semantic search over embedded chunks."""

from typing import Optional

import numpy as np
from pydantic import BaseModel

from claim_pipeline.auth.session import SessionContext
from claim_pipeline.config.settings import get_knowledge_config
from claim_pipeline.db.reference import KnowledgeRepository
from claim_pipeline.models.claim import KnowledgeEntry
from claim_pipeline.observability.logger import get_logger
from claim_pipeline.rag.chunker import chunk_text
from claim_pipeline.rag.embeddings import EmbeddingProvider, get_embedding_provider

logger = get_logger(__name__)

# Longest query text sent to the embedding model
MAX_QUERY_CHARS = 8000


class KnowledgeMatch(BaseModel):
    """A knowledge chunk with its cosine similarity to the query."""

    entry: KnowledgeEntry
    similarity: float

    def as_prompt_block(self) -> str:
        return f"[KNOWLEDGE_BASE]: {self.entry.title}\n{self.entry.chunk_text}"


def _overlaps(values: list[str], wanted: Optional[list[str]]) -> bool:
    if not wanted:
        return True
    return bool(set(values) & set(wanted))


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of query against each row of matrix; zero vectors score 0."""
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, matrix @ query / denom, 0.0)
    return scores


class KnowledgeBase:
    """Chunks, embeds and searches reference documents for report prompts."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        db_path: str | None = None,
        chunk_size: int | None = None,
    ):
        config = get_knowledge_config()
        self.embedder = embedder
        self.chunk_size = chunk_size or config["chunk_size"]
        self.default_match_count = config["match_count"]
        self.default_match_threshold = config["match_threshold"]
        self._repo = KnowledgeRepository(db_path)

    def ingest(
        self,
        title: str,
        content: str,
        session: SessionContext,
        policy_types: list[str] | None = None,
        categories: list[str] | None = None,
        source_document: str | None = None,
    ) -> list[str]:
        """Split content into chunks, embed them and store one row per chunk.

        Admin only. All chunks are embedded before anything is stored, so a
        failed embedding call stores nothing.

        Returns:
            IDs of the stored chunks.

        Raises:
            PermissionDeniedError: If the session is not an admin.
            ValueError: If title or content is blank.
        """
        session.require_admin()
        if not title or not title.strip():
            raise ValueError("Knowledge document title is required")
        if not content or not content.strip():
            raise ValueError("Knowledge document content is required")
        chunks = chunk_text(content, self.chunk_size)
        vectors = self.embedder.embed_batch(chunks)
        ids = self._repo.insert_chunks(
            title=title.strip(),
            content=content,
            chunks=chunks,
            embeddings=[list(map(float, v)) for v in vectors],
            policy_types=policy_types,
            categories=categories,
            source_document=source_document,
            created_by=session.user_id,
        )
        logger.info("Ingested knowledge document: %d chunks", len(ids))
        return ids

    def search(
        self,
        query: str,
        policy_types: list[str] | None = None,
        categories: list[str] | None = None,
        match_count: int | None = None,
        match_threshold: float | None = None,
    ) -> list[KnowledgeMatch]:
        """Return the best active chunks with similarity above the threshold, best first."""
        if not query or not query.strip():
            return []
        count = self.default_match_count if match_count is None else match_count
        threshold = self.default_match_threshold if match_threshold is None else match_threshold

        rows = [
            (entry, vector)
            for entry, vector in self._repo.list_active_with_embeddings()
            if _overlaps(entry.policy_types, policy_types) and _overlaps(entry.categories, categories)
        ]
        if not rows or count <= 0:
            return []

        dimension = len(rows[0][1])
        rows = [(e, v) for e, v in rows if len(v) == dimension]
        query_vector = np.asarray(self.embedder.embed(query[:MAX_QUERY_CHARS]), dtype=float)
        if query_vector.shape[0] != dimension:
            raise ValueError(
                f"Query embedding has {query_vector.shape[0]} dimensions, stored chunks have {dimension}"
            )
        matrix = np.array([v for _, v in rows], dtype=float)
        scores = cosine_similarities(query_vector, matrix)

        order = np.argsort(-scores)
        matches = [
            KnowledgeMatch(entry=rows[i][0], similarity=float(scores[i]))
            for i in order
            if scores[i] > threshold
        ]
        return matches[:count]


def format_knowledge_context(matches: list[KnowledgeMatch]) -> str:
    return "\n\n".join(m.as_prompt_block() for m in matches)


def build_knowledge_base(db_path: str | None = None) -> KnowledgeBase:
    """KnowledgeBase with the embedding provider configured in the environment."""
    config = get_knowledge_config()
    kwargs = {}
    if config["embedding_provider"] == "openai":
        kwargs["dimensions"] = config["embedding_dimensions"]
    embedder = get_embedding_provider(
        config["embedding_provider"], model_name=config["embedding_model"], **kwargs
    )
    return KnowledgeBase(embedder, db_path=db_path)
