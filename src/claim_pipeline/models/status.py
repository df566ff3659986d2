"""Document, claim and workflow status model.

Document statuses form a strictly ordered pipeline. A document may only move
forward (or stay where it is); ``report_generated`` is terminal. The
``ocr_processing`` and ``anonymizing`` states exist for compatibility with
rows written by other tools, but the pipeline never persists them: a step
either commits its final status or nothing.
"""

from enum import Enum


class DocumentStatus(str, Enum):
    """Processing status of a single uploaded document."""

    UPLOADED = "uploaded"
    OCR_PROCESSING = "ocr_processing"
    OCR_COMPLETE = "ocr_complete"
    ANONYMIZING = "anonymizing"
    ANONYMIZED = "anonymized"
    READY_FOR_REVIEW = "ready_for_review"
    APPROVED = "approved"
    REPORT_GENERATED = "report_generated"

    @property
    def rank(self) -> int:
        """Position of this status in the pipeline (0 = uploaded)."""
        return _PIPELINE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is DocumentStatus.REPORT_GENERATED

    def __lt__(self, other):
        if not isinstance(other, DocumentStatus):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, DocumentStatus):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, DocumentStatus):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, DocumentStatus):
            return NotImplemented
        return self.rank >= other.rank


_PIPELINE_ORDER = (
    DocumentStatus.UPLOADED,
    DocumentStatus.OCR_PROCESSING,
    DocumentStatus.OCR_COMPLETE,
    DocumentStatus.ANONYMIZING,
    DocumentStatus.ANONYMIZED,
    DocumentStatus.READY_FOR_REVIEW,
    DocumentStatus.APPROVED,
    DocumentStatus.REPORT_GENERATED,
)

# Statuses a document passes through before a human can review it
IN_PIPELINE_STATUSES = frozenset(
    {
        DocumentStatus.UPLOADED,
        DocumentStatus.OCR_PROCESSING,
        DocumentStatus.OCR_COMPLETE,
        DocumentStatus.ANONYMIZING,
        DocumentStatus.ANONYMIZED,
    }
)


class ClaimStatus(str, Enum):
    """Claim-level status stored on the claim row."""

    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WorkflowStatus(str, Enum):
    """Aggregate workflow status derived from a claim's documents."""

    NO_DOCUMENTS = "no_documents"
    PROCESSING = "processing"
    PENDING_APPROVAL = "pending_approval"
    AWAITING_ANALYSIS = "awaiting_analysis"
    ANALYSIS_IN_PROGRESS = "analysis_in_progress"
    ANALYSIS_COMPLETE = "analysis_complete"
    UNKNOWN = "unknown"


class InvalidTransitionError(ValueError):
    """Raised when a document status change would move backward in the pipeline."""

    def __init__(self, document_id: str, current: DocumentStatus, requested: DocumentStatus):
        self.document_id = document_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Document {document_id} cannot move from {current.value} to {requested.value}"
        )


def parse_document_status(value: "str | DocumentStatus") -> DocumentStatus:
    """Coerce a raw status string into a DocumentStatus."""
    if isinstance(value, DocumentStatus):
        return value
    try:
        return DocumentStatus(value)
    except ValueError:
        raise ValueError(f"Unknown document status: {value!r}") from None


def can_transition(current: DocumentStatus, requested: DocumentStatus) -> bool:
    """Return True if moving from current to requested keeps the pipeline monotonic."""
    return requested >= current


def check_transition(
    document_id: str,
    current: "str | DocumentStatus",
    requested: "str | DocumentStatus",
) -> DocumentStatus:
    """Validate a status change and return the requested status.

    Raises:
        InvalidTransitionError: If the change would move the document backward.
    """
    current_status = parse_document_status(current)
    requested_status = parse_document_status(requested)
    if not can_transition(current_status, requested_status):
        raise InvalidTransitionError(document_id, current_status, requested_status)
    return requested_status
