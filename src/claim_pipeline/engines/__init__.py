"""Clients for the external engines the pipeline wraps, and a factory building them from env."""

from claim_pipeline.engines.dlp import DEFAULT_INFO_TYPES, DeidentificationEngine, DLPEngine
from claim_pipeline.engines.errors import (
    EngineAuthError,
    EngineError,
    EngineResponseError,
    PaymentRequiredError,
    RateLimitError,
    StorageError,
)
from claim_pipeline.engines.google_auth import ServiceAccountTokenProvider
from claim_pipeline.engines.llm import LiteLLMEngine, LLMEngine
from claim_pipeline.engines.ocr import DocumentAIEngine, OCREngine
from claim_pipeline.engines.storage import LocalFileStorage, Storage

__all__ = [
    "DEFAULT_INFO_TYPES",
    "DLPEngine",
    "DeidentificationEngine",
    "DocumentAIEngine",
    "EngineAuthError",
    "EngineError",
    "EngineResponseError",
    "LLMEngine",
    "LiteLLMEngine",
    "LocalFileStorage",
    "OCREngine",
    "PaymentRequiredError",
    "RateLimitError",
    "ServiceAccountTokenProvider",
    "Storage",
    "StorageError",
    "build_storage",
    "build_ocr_engine",
    "build_deidentification_engine",
]


def build_storage() -> LocalFileStorage:
    from claim_pipeline.config.settings import get_storage_dir

    return LocalFileStorage(get_storage_dir())


def build_ocr_engine() -> DocumentAIEngine:
    """Document AI engine configured from DOCUMENT_AI_* / GOOGLE_CLOUD_CREDENTIALS."""
    from claim_pipeline.config.settings import get_google_config

    cfg = get_google_config()
    tokens = ServiceAccountTokenProvider(cfg["ocr_credentials"])
    project_id = cfg["document_ai_project_id"] or tokens.project_id
    if not project_id or not cfg["document_ai_processor_id"]:
        raise ValueError("DOCUMENT_AI_PROJECT_ID and DOCUMENT_AI_PROCESSOR_ID must be set")
    return DocumentAIEngine(
        tokens,
        project_id=project_id,
        processor_id=cfg["document_ai_processor_id"],
        location=cfg["document_ai_location"],
    )


def build_deidentification_engine() -> DLPEngine:
    """DLP engine; the project comes from the service account credentials."""
    from claim_pipeline.config.settings import get_google_config

    cfg = get_google_config()
    tokens = ServiceAccountTokenProvider(cfg["dlp_credentials"])
    project_id = tokens.project_id
    if not project_id:
        raise ValueError("GOOGLE_CLOUD_CREDENTIALS must contain a project_id")
    return DLPEngine(tokens, project_id=project_id, min_likelihood=cfg["dlp_min_likelihood"])
