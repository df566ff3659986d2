"""Errors raised by external engine clients (storage, OCR, DLP, LLM, embeddings)."""


class EngineError(Exception):
    """An external engine call failed.

    Attributes:
        status_code: HTTP status returned by the engine, if any.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EngineAuthError(EngineError):
    """Credentials are missing or invalid, or a token could not be obtained."""


class RateLimitError(EngineError):
    """The engine answered 429. Safe to retry later."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)


class PaymentRequiredError(EngineError):
    """The engine answered 402. Retrying will not help until credits are added."""

    def __init__(self, message: str = "Payment required. Please add credits to your workspace."):
        super().__init__(message, status_code=402)


class EngineResponseError(EngineError):
    """The engine answered successfully but the body is empty or malformed."""


class StorageError(EngineError):
    """A blob could not be read or written."""
