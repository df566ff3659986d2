"""Errors raised by pipeline steps and report generation.

Each error carries a machine-readable ``reason`` and the underlying cause
(also chained with ``raise ... from``). Only rate limiting is retryable.
"""

from claim_pipeline.engines.errors import (
    EngineAuthError,
    EngineError,
    EngineResponseError,
    PaymentRequiredError,
    RateLimitError,
    StorageError,
)

REASON_NOT_FOUND = "not_found"
REASON_INVALID_STATE = "invalid_state"
REASON_MISSING_SOURCE = "missing_source"
REASON_DOWNLOAD_FAILED = "download_failed"
REASON_AUTH_FAILED = "auth_failed"
REASON_RATE_LIMITED = "rate_limited"
REASON_PAYMENT_REQUIRED = "payment_required"
REASON_ENGINE_ERROR = "engine_error"
REASON_INVALID_RESPONSE = "invalid_response"
REASON_PLACEHOLDER_MISMATCH = "placeholder_mismatch"
REASON_EMPTY_TEXT = "empty_text"

# User-facing messages for reasons that need a distinct explanation
USER_MESSAGES = {
    REASON_RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    REASON_PAYMENT_REQUIRED: "Payment required. Please add credits to the AI workspace.",
    REASON_AUTH_FAILED: "External service credentials are missing or invalid.",
}


class PipelineError(Exception):
    """Base class for pipeline step failures."""

    step = "pipeline"

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        reason: str = REASON_ENGINE_ERROR,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.document_id = document_id
        self.reason = reason
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.reason == REASON_RATE_LIMITED

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.reason, self.message)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "step": self.step,
            "document_id": self.document_id,
            "reason": self.reason,
            "retryable": self.retryable,
        }


class ExtractionError(PipelineError):
    step = "extract"


class AnonymizationError(PipelineError):
    step = "anonymize"


class CleaningError(PipelineError):
    step = "clean"


class ApprovalError(PipelineError):
    step = "approve"


class ReportGenerationError(PipelineError):
    step = "report"


def reason_for_engine_error(error: EngineError) -> str:
    """Map an engine failure to a pipeline reason."""
    if isinstance(error, RateLimitError):
        return REASON_RATE_LIMITED
    if isinstance(error, PaymentRequiredError):
        return REASON_PAYMENT_REQUIRED
    if isinstance(error, EngineAuthError):
        return REASON_AUTH_FAILED
    if isinstance(error, StorageError):
        return REASON_DOWNLOAD_FAILED
    if isinstance(error, EngineResponseError):
        return REASON_INVALID_RESPONSE
    return REASON_ENGINE_ERROR
