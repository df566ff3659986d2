"""Pydantic models for batch results and workflow aggregation."""

from typing import Optional

from pydantic import BaseModel, Field

from claim_pipeline.models.status import DocumentStatus, WorkflowStatus


class DocumentOutcome(BaseModel):
    """Result of running the automatic steps on one document."""

    document_id: str
    file_name: str
    success: bool
    status: DocumentStatus = Field(..., description="Document status after the run")
    completed_steps: list[str] = Field(default_factory=list)
    failed_step: Optional[str] = Field(default=None, description="extract, anonymize or clean")
    error: Optional[str] = None
    reason: Optional[str] = Field(default=None, description="Machine-readable failure reason")


class BatchProgress(BaseModel):
    """Progress report emitted after each document of a batch."""

    claim_id: str
    index: int = Field(..., description="Zero-based position of the finished document")
    total: int
    outcome: DocumentOutcome

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 100
        return int((self.index + 1) * 100 / self.total)


class BatchResult(BaseModel):
    """Partial-failure summary of a claim batch."""

    claim_id: str
    total: int = 0
    processed: int = 0
    failed: int = 0
    outcomes: list[DocumentOutcome] = Field(default_factory=list)

    @property
    def errors(self) -> list[DocumentOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def message(self) -> str:
        return f"Processed {self.processed} of {self.total} documents"


class WorkflowSummary(BaseModel):
    """Dashboard view of a claim's document pipeline."""

    status: WorkflowStatus
    progress: int = Field(..., ge=0, le=100)
    total_documents: int = 0
    report_count: int = 0
    status_counts: dict[str, int] = Field(default_factory=dict)


class DashboardStats(BaseModel):
    """Per-user counters shown on the dashboard."""

    total_claims: int = 0
    total_documents: int = 0
    total_reports: int = 0
    processing_documents: int = 0
    completed_documents: int = 0
    pending_reviews: int = 0
