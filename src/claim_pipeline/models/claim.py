"""Pydantic models for claims, documents, processed text and reports."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from claim_pipeline.models.status import ClaimStatus, DocumentStatus

REPORT_FIELDS = (
    "summary",
    "relevance_analysis",
    "exclusions_analysis",
    "recommendation",
    "justification",
)


class ClaimInput(BaseModel):
    """Input payload for creating a claim."""

    claim_number: str = Field(..., min_length=1, description="Claim number (e.g. PU-2025-001)")
    client_name: str = Field(..., min_length=1, description="Insured client name")
    policy_number: str = Field(..., min_length=1, description="Insurance policy number")
    claim_type: str = Field(..., min_length=1, description="Claim type (e.g. Úraz, Choroba)")

    @field_validator("claim_number", "client_name", "policy_number", "claim_type")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class Claim(BaseModel):
    """A persisted claim."""

    id: str
    claim_number: str
    client_name: str
    policy_number: str
    claim_type: str
    status: ClaimStatus = ClaimStatus.NEW
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def prompt_info(self) -> dict[str, str]:
        """Claim metadata included in LLM prompts."""
        return {
            "claim_number": self.claim_number,
            "client_name": self.client_name,
            "policy_number": self.policy_number,
            "claim_type": self.claim_type,
        }


class Document(BaseModel):
    """An uploaded file belonging to exactly one claim."""

    id: str
    claim_id: str
    file_name: str
    file_path: str
    file_size: int = 0
    file_type: Optional[str] = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    uploaded_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def mime_type(self) -> str:
        """Mime type sent to the OCR engine."""
        if self.file_type:
            return self.file_type
        if self.file_name.lower().endswith(".pdf"):
            return "application/pdf"
        return "image/jpeg"


class ProcessedDocument(BaseModel):
    """Successive text transformations of one document.

    Fields are additive: later steps never clear earlier ones, so the whole
    transformation history stays inspectable.
    """

    document_id: str
    ocr_text: Optional[str] = None
    anonymized_text: Optional[str] = None
    cleaned_text: Optional[str] = None
    reviewed_text: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def review_source_text(self) -> Optional[str]:
        """Best available text to prefill the manual review."""
        return self.reviewed_text or self.cleaned_text or self.anonymized_text


class ReportContent(BaseModel):
    """The five-key analysis object returned by the LLM.

    Field names are an external contract and must not change.
    """

    summary: str
    relevance_analysis: str
    exclusions_analysis: str
    recommendation: str
    justification: str

    @field_validator(*REPORT_FIELDS)
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class Report(ReportContent):
    """A persisted analysis report."""

    id: str
    claim_id: str
    document_id: str
    scope: Literal["document", "claim"] = "document"
    analysis_type_id: Optional[str] = None
    analysis_type_name: Optional[str] = None
    generated_by: Optional[str] = None
    created_at: Optional[str] = None


class InsuranceContext(BaseModel):
    """Reference text (policy conditions, exclusions, ...) included in report prompts."""

    id: str
    context_type: str
    title: str
    content: str
    is_active: bool = True

    def as_prompt_block(self) -> str:
        return f"[{self.context_type.upper()}]: {self.title}\n{self.content}"


class AnalysisType(BaseModel):
    """Admin-defined system prompt for claim-level reports."""

    id: str
    name: str
    description: str = ""
    system_prompt: str
    is_active: bool = True


class KnowledgeEntry(BaseModel):
    """One embedded chunk of a knowledge base document."""

    id: str
    title: str
    chunk_text: str
    chunk_index: int
    policy_types: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    source_document: Optional[str] = None
    is_active: bool = True
    metadata: Optional[dict[str, Any]] = None
