"""Per-claim LLM usage and pipeline step metrics.

This module provides:
- ClaimMetrics: Aggregates LLM calls and step outcomes per claim
- Cost estimation with model-specific pricing
- Latency percentile calculations
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


# Model pricing per 1K tokens (approximate)
# Format: model_name -> (input_price, output_price) per 1K tokens
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (0.005, 0.015),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4.1-mini": (0.0004, 0.0016),
    "text-embedding-3-small": (0.00002, 0.0),
    "text-embedding-3-large": (0.00013, 0.0),
    "openrouter/openai/gpt-4o-mini": (0.00015, 0.0006),
    "openrouter/google/gemini-2.5-flash": (0.0003, 0.0025),
}

DEFAULT_PRICING = (0.001, 0.002)


@dataclass
class LLMCallMetric:
    """Metrics for a single LLM call."""

    timestamp: datetime
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: float
    status: str
    error: str | None = None
    purpose: str | None = None


@dataclass
class StepMetric:
    """Outcome of one pipeline step on one document."""

    timestamp: datetime
    step: str
    document_id: str
    success: bool
    latency_ms: float
    reason: str | None = None


@dataclass
class ClaimMetricsSummary:
    """Summary of metrics for a single claim."""

    claim_id: str
    start_time: datetime
    total_llm_calls: int
    successful_calls: int
    failed_calls: int
    total_input_tokens: int
    total_output_tokens: int
    total_cost_usd: float
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    models_used: list[str]
    steps: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "claim_id": self.claim_id,
            "start_time": self.start_time.isoformat(),
            "total_llm_calls": self.total_llm_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "total_tokens": self.total_tokens,
            "total_cost_usd": round(self.total_cost_usd, 6),
            "avg_latency_ms": self.avg_latency_ms,
            "p50_latency_ms": self.p50_latency_ms,
            "p95_latency_ms": self.p95_latency_ms,
            "models_used": self.models_used,
            "steps": self.steps,
        }


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate cost in USD for a model and token counts.

    Exact model names win; otherwise the first pricing key contained in the
    model name (or vice versa) is used, then DEFAULT_PRICING.
    """
    if model in MODEL_PRICING:
        input_price, output_price = MODEL_PRICING[model]
    else:
        model_lower = model.lower()
        matched = None
        for key, pricing in MODEL_PRICING.items():
            if key.lower() in model_lower or model_lower in key.lower():
                matched = pricing
                break
        input_price, output_price = matched or DEFAULT_PRICING
    return (input_tokens * input_price / 1000) + (output_tokens * output_price / 1000)


def _percentile(values: list[float], p: float) -> float:
    """Calculate the p-th percentile of values (linear interpolation)."""
    if not values:
        return 0.0
    sorted_values = sorted(values)
    k = (len(sorted_values) - 1) * p / 100
    f = int(k)
    c = f + 1
    if c >= len(sorted_values):
        return sorted_values[-1]
    return sorted_values[f] + (k - f) * (sorted_values[c] - sorted_values[f])


class ClaimMetrics:
    """Thread-safe collector of LLM calls and step outcomes keyed by claim ID."""

    def __init__(self):
        # Reentrant: record_* may create the claim bucket while holding the lock
        self._lock = threading.RLock()
        self._claims: dict[str, dict[str, Any]] = {}

    def _bucket(self, claim_id: str) -> dict[str, Any]:
        with self._lock:
            if claim_id not in self._claims:
                self._claims[claim_id] = {
                    "start_time": datetime.now(timezone.utc),
                    "llm_calls": [],
                    "steps": [],
                }
            return self._claims[claim_id]

    def record_llm_call(
        self,
        claim_id: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float | None = None,
        latency_ms: float = 0.0,
        status: str = "success",
        error: str | None = None,
        purpose: str | None = None,
    ) -> None:
        """Record one LLM call.

        Args:
            claim_id: ID of the claim the call was made for
            model: Model name/identifier
            input_tokens: Number of prompt tokens
            output_tokens: Number of completion tokens
            cost_usd: Cost in USD (estimated if not provided)
            latency_ms: Latency in milliseconds
            status: "success" or "error"
            error: Error message if status is "error"
            purpose: What the call was for ("clean", "report", ...)
        """
        if cost_usd is None:
            cost_usd = calculate_cost(model, input_tokens, output_tokens)
        metric = LLMCallMetric(
            timestamp=datetime.now(timezone.utc),
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost_usd,
            latency_ms=latency_ms,
            status=status,
            error=error,
            purpose=purpose,
        )
        with self._lock:
            self._bucket(claim_id)["llm_calls"].append(metric)

        logger.debug(
            "[llm_metric] claim_id=%s, model=%s, purpose=%s, tokens=%d/%d, cost=$%.5f, latency=%.0fms, status=%s",
            claim_id,
            model,
            purpose,
            input_tokens,
            output_tokens,
            cost_usd,
            latency_ms,
            status,
        )

    def record_step(
        self,
        claim_id: str,
        step: str,
        document_id: str,
        success: bool,
        latency_ms: float = 0.0,
        reason: str | None = None,
    ) -> None:
        """Record the outcome of one pipeline step."""
        metric = StepMetric(
            timestamp=datetime.now(timezone.utc),
            step=step,
            document_id=document_id,
            success=success,
            latency_ms=latency_ms,
            reason=reason,
        )
        with self._lock:
            self._bucket(claim_id)["steps"].append(metric)

    def get_claim_summary(self, claim_id: str) -> ClaimMetricsSummary | None:
        """Get summary metrics for a specific claim, or None if nothing was recorded."""
        with self._lock:
            if claim_id not in self._claims:
                return None
            data = self._claims[claim_id]
            calls: list[LLMCallMetric] = list(data["llm_calls"])
            steps: list[StepMetric] = list(data["steps"])
            start_time = data["start_time"]

        step_counts: dict[str, dict[str, int]] = {}
        for s in steps:
            counts = step_counts.setdefault(s.step, {"succeeded": 0, "failed": 0})
            counts["succeeded" if s.success else "failed"] += 1

        latencies = [c.latency_ms for c in calls]
        return ClaimMetricsSummary(
            claim_id=claim_id,
            start_time=start_time,
            total_llm_calls=len(calls),
            successful_calls=sum(1 for c in calls if c.status == "success"),
            failed_calls=sum(1 for c in calls if c.status == "error"),
            total_input_tokens=sum(c.input_tokens for c in calls),
            total_output_tokens=sum(c.output_tokens for c in calls),
            total_cost_usd=sum(c.cost_usd for c in calls),
            avg_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
            p50_latency_ms=_percentile(latencies, 50),
            p95_latency_ms=_percentile(latencies, 95),
            models_used=sorted({c.model for c in calls}),
            steps=step_counts,
        )

    def get_all_summaries(self) -> list[ClaimMetricsSummary]:
        with self._lock:
            claim_ids = list(self._claims.keys())
        return [s for s in (self.get_claim_summary(cid) for cid in claim_ids) if s]

    def get_global_stats(self) -> dict[str, Any]:
        """Totals across all tracked claims."""
        summaries = self.get_all_summaries()
        return {
            "total_claims": len(summaries),
            "total_llm_calls": sum(s.total_llm_calls for s in summaries),
            "total_tokens": sum(s.total_tokens for s in summaries),
            "total_cost_usd": round(sum(s.total_cost_usd for s in summaries), 6),
        }

    def export_json(self, claim_id: str | None = None) -> str:
        """Export one claim's summary, or all summaries with global stats, as JSON."""
        if claim_id:
            summary = self.get_claim_summary(claim_id)
            if not summary:
                return json.dumps({"error": f"No metrics for claim: {claim_id}"})
            return json.dumps(summary.to_dict(), indent=2, default=str)
        return json.dumps(
            {
                "global_stats": self.get_global_stats(),
                "claims": [s.to_dict() for s in self.get_all_summaries()],
            },
            indent=2,
            default=str,
        )


# Global metrics instance
_global_metrics: ClaimMetrics | None = None
_metrics_lock = threading.Lock()


def get_metrics() -> ClaimMetrics:
    """Get the global ClaimMetrics instance."""
    global _global_metrics
    with _metrics_lock:
        if _global_metrics is None:
            _global_metrics = ClaimMetrics()
        return _global_metrics


def reset_metrics() -> None:
    """Drop the global ClaimMetrics instance (used by tests)."""
    global _global_metrics
    with _metrics_lock:
        _global_metrics = None


def get_claim_summary(claim_id: str) -> ClaimMetricsSummary | None:
    """Convenience function to get claim summary from global metrics."""
    return get_metrics().get_claim_summary(claim_id)
