"""Embedding generation for the knowledge base.

Supports two backends:
- OpenAI embeddings (API-based, default, 1536 dimensions)
- sentence-transformers (local, optional extra)
"""

import os
from abc import ABC, abstractmethod
from typing import List, Optional, Union

import numpy as np
import openai

from claim_pipeline.engines.errors import EngineError, RateLimitError
from claim_pipeline.utils.retry import with_retry

# Transient OpenAI failures worth retrying
OPENAI_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,
)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> np.ndarray:
        """Generate embeddings for multiple texts (num_texts x dimension)."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension."""


class SentenceTransformerEmbedding(EmbeddingProvider):
    """Sentence-transformers based embeddings (local, no API needed)."""

    DEFAULT_MODEL = "paraphrase-multilingual-MiniLM-L12-v2"

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or self.DEFAULT_MODEL
        self._model = None
        self._dimension = None

    @property
    def model(self):
        """Lazy load the model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers is required for local embeddings. "
                    "Install with: pip install 'claim-pipeline[local-embeddings]'"
                ) from None
            self._model = SentenceTransformer(self.model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
        return self._model

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            _ = self.model
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        return self.model.encode(text, convert_to_numpy=True)

    def embed_batch(self, texts: list[str], batch_size: int = 32) -> np.ndarray:
        return self.model.encode(
            texts,
            convert_to_numpy=True,
            batch_size=batch_size,
            show_progress_bar=False,
        )


class OpenAIEmbedding(EmbeddingProvider):
    """OpenAI API-based embeddings with a fixed output dimension."""

    DEFAULT_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: int = 1536,
        client=None,
    ):
        """Initialize the OpenAI embedding provider.

        Args:
            model_name: Name of the OpenAI embedding model
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            base_url: OpenAI-compatible gateway URL (defaults to OPENAI_API_BASE env var)
            dimensions: Requested embedding size
            client: Pre-built OpenAI client (tests)
        """
        self.model_name = model_name or self.DEFAULT_MODEL
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url or os.getenv("OPENAI_API_BASE") or None
        self._dimension = dimensions
        self._client = client

    @property
    def client(self):
        """Lazy load the OpenAI client."""
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    @property
    def dimension(self) -> int:
        return self._dimension

    @with_retry(max_attempts=3, min_wait=1.0, max_wait=8.0, exceptions=OPENAI_RETRYABLE)
    def _create(self, input_text: Union[str, List[str]]):
        return self.client.embeddings.create(
            model=self.model_name,
            input=input_text,
            dimensions=self._dimension,
        )

    def _call_embeddings_api(self, input_text: Union[str, List[str]]):
        """Call the embeddings API; transient failures are retried, then mapped to EngineError."""
        try:
            return self._create(input_text)
        except openai.RateLimitError as e:
            raise RateLimitError() from e
        except openai.OpenAIError as e:
            raise EngineError(
                f"Failed to generate embedding: {e}", getattr(e, "status_code", None)
            ) from e

    def embed(self, text: str) -> np.ndarray:
        response = self._call_embeddings_api(text)
        return np.array(response.data[0].embedding, dtype=float)

    def embed_batch(self, texts: list[str], batch_size: int = 100) -> np.ndarray:
        embeddings = []
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            response = self._call_embeddings_api(batch)
            embeddings.extend(np.array(d.embedding, dtype=float) for d in response.data)
        return np.array(embeddings)


def get_embedding_provider(
    provider: str = "openai",
    model_name: Optional[str] = None,
    **kwargs,
) -> EmbeddingProvider:
    """Factory function to get an embedding provider.

    Args:
        provider: Provider type ("openai" or "sentence-transformers")
        model_name: Model name for the provider
        **kwargs: Additional arguments for the provider

    Returns:
        EmbeddingProvider instance
    """
    if provider == "openai":
        return OpenAIEmbedding(model_name=model_name, **kwargs)
    elif provider == "sentence-transformers":
        return SentenceTransformerEmbedding(model_name=model_name)
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")
