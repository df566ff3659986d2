"""Claim-level workflow summary, claim status recompute and dashboard counters."""

from collections import Counter
from typing import Iterable

from claim_pipeline.db.repository import ClaimRepository, DocumentRepository, ReportRepository
from claim_pipeline.models.status import (
    IN_PIPELINE_STATUSES,
    ClaimStatus,
    DocumentStatus,
    WorkflowStatus,
    parse_document_status,
)
from claim_pipeline.models.workflow import DashboardStats, WorkflowSummary
from claim_pipeline.observability.logger import get_logger, log_claim_event

logger = get_logger(__name__)

COMPLETED_STATUSES = frozenset({DocumentStatus.APPROVED, DocumentStatus.REPORT_GENERATED})


def _percent(value: float) -> int:
    return max(0, min(100, int(value)))


def compute_workflow_summary(
    statuses: Iterable["str | DocumentStatus"], report_count: int
) -> WorkflowSummary:
    """Derive the aggregate workflow status and progress of a claim.

    Conditions are checked from the most complete to the least complete; the
    first match wins.
    """
    parsed = [parse_document_status(s) for s in statuses]
    total = len(parsed)
    counts = Counter(s.value for s in parsed)
    reports = max(0, report_count)

    def summary(status: WorkflowStatus, progress: float) -> WorkflowSummary:
        return WorkflowSummary(
            status=status,
            progress=_percent(progress),
            total_documents=total,
            report_count=reports,
            status_counts=dict(counts),
        )

    if total == 0:
        return summary(WorkflowStatus.NO_DOCUMENTS, 0)

    approved_or_later = sum(1 for s in parsed if s >= DocumentStatus.APPROVED)
    ready = counts.get(DocumentStatus.READY_FOR_REVIEW.value, 0)
    ready_or_later = sum(1 for s in parsed if s >= DocumentStatus.READY_FOR_REVIEW)

    if counts.get(DocumentStatus.REPORT_GENERATED.value, 0) == total and reports == total:
        return summary(WorkflowStatus.ANALYSIS_COMPLETE, 100)
    if approved_or_later == total and reports > 0:
        return summary(WorkflowStatus.ANALYSIS_IN_PROGRESS, 75 + 25 * min(reports, total) / total)
    if approved_or_later == total:
        return summary(WorkflowStatus.AWAITING_ANALYSIS, 75)
    if ready > 0:
        return summary(WorkflowStatus.PENDING_APPROVAL, 50 + 25 * (approved_or_later + ready) / total)
    if any(s in IN_PIPELINE_STATUSES for s in parsed):
        return summary(WorkflowStatus.PROCESSING, 50 * ready_or_later / total)
    return summary(WorkflowStatus.UNKNOWN, 0)


def get_claim_workflow(claim_id: str, db_path: str | None = None) -> WorkflowSummary:
    """Read a claim's document statuses and report count and summarize them."""
    documents = DocumentRepository(db_path).list_documents(claim_id)
    report_count = ReportRepository(db_path).count_reports(claim_id)
    return compute_workflow_summary([d.status for d in documents], report_count)


def derive_claim_status(statuses: Iterable[DocumentStatus]) -> ClaimStatus:
    """Claim status implied by document statuses (never ``rejected``)."""
    parsed = list(statuses)
    if not parsed:
        return ClaimStatus.NEW
    if all(s is DocumentStatus.REPORT_GENERATED for s in parsed):
        return ClaimStatus.COMPLETED
    return ClaimStatus.IN_PROGRESS


def recalculate_claim_status(claim_id: str, db_path: str | None = None) -> ClaimStatus:
    """Recompute and persist the claim status from its documents.

    A ``rejected`` claim is a human decision and is left untouched.

    Raises:
        ValueError: If the claim does not exist.
    """
    claims = ClaimRepository(db_path)
    claim = claims.get_claim(claim_id)
    if claim is None:
        raise ValueError(f"Claim not found: {claim_id}")
    if claim.status is ClaimStatus.REJECTED:
        return claim.status
    documents = DocumentRepository(db_path).list_documents(claim_id)
    new_status = derive_claim_status(d.status for d in documents)
    if new_status is not claim.status:
        claims.update_claim_status(claim_id, new_status)
        log_claim_event(
            logger,
            "claim_status_changed",
            claim_id=claim_id,
            old_status=claim.status.value,
            new_status=new_status.value,
        )
    return new_status


def dashboard_stats(owner_id: str, db_path: str | None = None) -> DashboardStats:
    """Counters for the claims created by owner_id."""
    raw = ClaimRepository(db_path).get_owner_counts(owner_id)
    by_status = raw["document_status_counts"]

    def bucket(statuses: frozenset) -> int:
        return sum(by_status.get(s.value, 0) for s in statuses)

    return DashboardStats(
        total_claims=raw["total_claims"],
        total_documents=sum(by_status.values()),
        total_reports=raw["total_reports"],
        processing_documents=bucket(IN_PIPELINE_STATUSES),
        completed_documents=bucket(COMPLETED_STATUSES),
        pending_reviews=by_status.get(DocumentStatus.READY_FOR_REVIEW.value, 0),
    )
