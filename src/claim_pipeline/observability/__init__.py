"""Observability for the document pipeline.

This module provides:
- Structured logging with claim, document and step context
- Per-claim LLM token, cost and latency tracking
- Per-claim pipeline step outcome counts
"""

from claim_pipeline.observability.logger import (
    ClaimLogger,
    get_logger,
    claim_context,
    log_claim_event,
)
from claim_pipeline.observability.metrics import (
    ClaimMetrics,
    get_metrics,
    get_claim_summary,
    reset_metrics,
)

__all__ = [
    # Logger
    "ClaimLogger",
    "get_logger",
    "claim_context",
    "log_claim_event",
    # Metrics
    "ClaimMetrics",
    "get_metrics",
    "get_claim_summary",
    "reset_metrics",
]
