"""Pydantic models and status enums for claims and documents."""

from claim_pipeline.models.claim import (
    REPORT_FIELDS,
    AnalysisType,
    Claim,
    ClaimInput,
    Document,
    InsuranceContext,
    KnowledgeEntry,
    ProcessedDocument,
    Report,
    ReportContent,
)
from claim_pipeline.models.status import (
    ClaimStatus,
    DocumentStatus,
    InvalidTransitionError,
    WorkflowStatus,
)
from claim_pipeline.models.workflow import (
    BatchProgress,
    BatchResult,
    DashboardStats,
    DocumentOutcome,
    WorkflowSummary,
)

__all__ = [
    "REPORT_FIELDS",
    "AnalysisType",
    "BatchProgress",
    "BatchResult",
    "Claim",
    "ClaimInput",
    "ClaimStatus",
    "DashboardStats",
    "Document",
    "DocumentOutcome",
    "DocumentStatus",
    "InsuranceContext",
    "InvalidTransitionError",
    "KnowledgeEntry",
    "ProcessedDocument",
    "Report",
    "ReportContent",
    "WorkflowStatus",
    "WorkflowSummary",
]
