"""Structured logging with claim and document context.

This module provides:
- ClaimLogger: A logger adapter that attaches claim_id/document_id to all log messages
- claim_context: A context manager for setting claim, document and step context
- log_claim_event: Helper for logging pipeline events

Document text is never logged. Callers log lengths and identifiers only.
"""

import json
import logging
import os
import sys
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

# Thread-local storage for claim context
_context = threading.local()

_CONTEXT_KEYS = ("claim_id", "document_id", "step")


def _get_claim_context() -> dict[str, Any]:
    """Get the current claim context from thread-local storage."""
    return getattr(_context, "claim_data", {})


def _set_claim_context(data: dict[str, Any]) -> None:
    """Set the claim context in thread-local storage."""
    _context.claim_data = data


def _resolve(record: logging.LogRecord, key: str) -> Any:
    return getattr(record, key, None) or _get_claim_context().get(key)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with claim context."""
        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        for key in _CONTEXT_KEYS:
            value = _resolve(record, key)
            if value:
                log_data[key] = value

        if hasattr(record, "extra_data") and record.extra_data:
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter with claim context prefix."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with claim context prefix."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        ctx_parts = []
        claim_id = _resolve(record, "claim_id")
        if claim_id:
            ctx_parts.append(f"claim={claim_id}")
        document_id = _resolve(record, "document_id")
        if document_id:
            ctx_parts.append(f"doc={document_id}")
        step = _resolve(record, "step")
        if step:
            ctx_parts.append(f"step={step}")

        ctx_str = f" [{', '.join(ctx_parts)}]" if ctx_parts else ""

        message = record.getMessage()
        if hasattr(record, "extra_data") and record.extra_data:
            message += f" | {record.extra_data}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return f"{timestamp} {record.levelname:8}{ctx_str} {record.name}: {message}"


class ClaimLogger(logging.LoggerAdapter):
    """Logger adapter that adds claim context to all log messages."""

    def __init__(self, logger: logging.Logger, claim_id: str | None = None):
        super().__init__(logger, {})
        self._claim_id = claim_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add claim context to log kwargs."""
        extra = kwargs.get("extra", {})
        if self._claim_id:
            extra.setdefault("claim_id", self._claim_id)
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(
    name: str,
    claim_id: str | None = None,
    structured: bool | None = None,
) -> ClaimLogger:
    """Get a ClaimLogger instance.

    Args:
        name: Logger name (typically __name__)
        claim_id: Optional claim ID to attach to all logs
        structured: If True, use JSON format. If False, use human-readable.
                   If None, use CLAIM_PIPELINE_LOG_FORMAT env var (default: human)

    Returns:
        ClaimLogger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        if structured is None:
            log_format = os.environ.get("CLAIM_PIPELINE_LOG_FORMAT", "human").lower()
            structured = log_format == "json"

        # stderr keeps stdout free for CLI JSON output
        handler = logging.StreamHandler(sys.stderr)
        if structured:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(HumanReadableFormatter())

        logger.addHandler(handler)

        log_level = os.environ.get("CLAIM_PIPELINE_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, log_level, logging.INFO))

        # Prevent duplicate logs from propagating to parent handlers
        logger.propagate = False

    return ClaimLogger(logger, claim_id)


@contextmanager
def claim_context(
    claim_id: str | None,
    document_id: str | None = None,
    step: str | None = None,
    **extra: Any,
):
    """Context manager for setting claim context on all logs within the block.

    Nested blocks inherit fields they do not override.

    Usage:
        with claim_context(claim_id="c-1", document_id="d-1", step="extract"):
            logger.info("Running OCR")  # includes claim, document and step
    """
    old_context = _get_claim_context()
    new_context = dict(old_context)
    for key, value in (("claim_id", claim_id), ("document_id", document_id), ("step", step)):
        if value is not None:
            new_context[key] = value
    new_context.update(extra)
    _set_claim_context(new_context)
    try:
        yield
    finally:
        _set_claim_context(old_context)


def log_claim_event(
    logger: logging.Logger | ClaimLogger,
    event: str,
    claim_id: str | None = None,
    level: int = logging.INFO,
    **data: Any,
) -> None:
    """Log a pipeline event with structured data.

    Args:
        logger: Logger instance
        event: Event name (e.g., "document_status_changed", "batch_finished")
        claim_id: Claim ID (optional if using claim_context)
        level: Log level
        **data: Additional event data (identifiers and counts, never document text)
    """
    message = f"[{event}]"
    if data:
        details = ", ".join(f"{k}={v}" for k, v in data.items())
        message = f"{message} {details}"

    extra: dict[str, Any] = {"extra_data": {"event": event, **data}}
    if claim_id:
        extra["claim_id"] = claim_id
    logger.log(level, message, extra=extra)
