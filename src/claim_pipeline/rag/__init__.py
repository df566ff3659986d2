"""Knowledge base retrieval for report generation.

Reference documents are split into fixed-size chunks, embedded, stored in
SQLite and searched by cosine similarity with optional tag filters.
"""

from claim_pipeline.rag.chunker import chunk_text
from claim_pipeline.rag.embeddings import (
    EmbeddingProvider,
    OpenAIEmbedding,
    SentenceTransformerEmbedding,
    get_embedding_provider,
)
from claim_pipeline.rag.knowledge_base import (
    KnowledgeBase,
    KnowledgeMatch,
    build_knowledge_base,
    format_knowledge_context,
)

__all__ = [
    "EmbeddingProvider",
    "KnowledgeBase",
    "KnowledgeMatch",
    "OpenAIEmbedding",
    "SentenceTransformerEmbedding",
    "build_knowledge_base",
    "chunk_text",
    "format_knowledge_context",
    "get_embedding_provider",
]
