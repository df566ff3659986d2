"""Centralized configuration from environment variables with defaults."""

import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _str(key: str, default: str) -> str:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def get_storage_dir() -> str:
    """Root directory for uploaded document blobs."""
    return _str("CLAIM_PIPELINE_STORAGE_DIR", "data/storage")


MAX_UPLOAD_BYTES = _int("MAX_UPLOAD_BYTES", 20 * 1024 * 1024)
ALLOWED_UPLOAD_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".tiff")


# ---------------------------------------------------------------------------
# External engines (Google Document AI / DLP)
# ---------------------------------------------------------------------------

def get_google_config() -> dict[str, Any]:
    """Credentials and endpoints for the OCR and de-identification engines.

    Credentials are service-account JSON documents passed as strings.
    DOCUMENT_AI_CREDENTIALS falls back to GOOGLE_CLOUD_CREDENTIALS so a single
    service account can serve both engines.
    """
    dlp_credentials = os.environ.get("GOOGLE_CLOUD_CREDENTIALS", "").strip()
    ocr_credentials = os.environ.get("DOCUMENT_AI_CREDENTIALS", "").strip() or dlp_credentials
    return {
        "dlp_credentials": dlp_credentials,
        "ocr_credentials": ocr_credentials,
        "document_ai_location": _str("DOCUMENT_AI_LOCATION", "eu"),
        "document_ai_project_id": _str("DOCUMENT_AI_PROJECT_ID", ""),
        "document_ai_processor_id": _str("DOCUMENT_AI_PROCESSOR_ID", ""),
        "dlp_min_likelihood": _str("DLP_MIN_LIKELIHOOD", "POSSIBLE"),
    }


HTTP_TIMEOUT_SECONDS = _float("CLAIM_PIPELINE_HTTP_TIMEOUT", 120.0)


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------

BATCH_STEP_DELAY_SECONDS = _float("CLAIM_PIPELINE_BATCH_STEP_DELAY", 0.0)


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------

def get_knowledge_config() -> dict[str, Any]:
    """Chunking, embedding and retrieval settings for the knowledge base."""
    return {
        "chunk_size": _int("KNOWLEDGE_CHUNK_SIZE", 1000),
        "match_count": _int("KNOWLEDGE_MATCH_COUNT", 5),
        "match_threshold": _float("KNOWLEDGE_MATCH_THRESHOLD", 0.7),
        "embedding_provider": _str("CLAIM_PIPELINE_EMBEDDING_PROVIDER", "openai"),
        "embedding_model": os.environ.get("CLAIM_PIPELINE_EMBEDDING_MODEL", "").strip() or None,
        "embedding_dimensions": _int("CLAIM_PIPELINE_EMBEDDING_DIMENSIONS", 1536),
    }


# ---------------------------------------------------------------------------
# Prompt input limits
# ---------------------------------------------------------------------------

MAX_CUSTOM_INSTRUCTION_CHARS = _int("CLAIM_PIPELINE_MAX_INSTRUCTION_CHARS", 2000)
