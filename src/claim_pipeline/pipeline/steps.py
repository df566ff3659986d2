"""Single-document pipeline steps: extract, anonymize, clean and approve.

Each step reads one persisted field, calls one engine, and commits its output
text together with the new status in one transaction. A failed step commits
nothing and raises a PipelineError subclass.
"""

import re
import time
from contextlib import contextmanager

from claim_pipeline.auth.session import SessionContext
from claim_pipeline.db.repository import DocumentRepository
from claim_pipeline.engines.dlp import DEFAULT_INFO_TYPES, DeidentificationEngine
from claim_pipeline.engines.errors import EngineError
from claim_pipeline.engines.llm import LLMEngine
from claim_pipeline.engines.ocr import OCREngine
from claim_pipeline.engines.storage import Storage
from claim_pipeline.models.claim import Document, ProcessedDocument
from claim_pipeline.models.status import DocumentStatus, InvalidTransitionError
from claim_pipeline.observability.logger import claim_context, get_logger, log_claim_event
from claim_pipeline.observability.metrics import get_metrics
from claim_pipeline.pipeline.errors import (
    REASON_EMPTY_TEXT,
    REASON_INVALID_STATE,
    REASON_MISSING_SOURCE,
    REASON_NOT_FOUND,
    REASON_PLACEHOLDER_MISMATCH,
    AnonymizationError,
    ApprovalError,
    CleaningError,
    ExtractionError,
    PipelineError,
    reason_for_engine_error,
)
from claim_pipeline.pipeline.prompts import CLEANING_SYSTEM_PROMPT

logger = get_logger(__name__)

# Typed tokens inserted by de-identification, e.g. [PHONE_NUMBER], [OSOBA_1]
PLACEHOLDER_PATTERN = re.compile(r"\[[A-Z][A-Z0-9_]*\]")


def find_placeholders(text: str) -> set[str]:
    return set(PLACEHOLDER_PATTERN.findall(text or ""))


def missing_placeholders(source: str, cleaned: str) -> set[str]:
    """Placeholder tokens of source that do not appear verbatim in cleaned."""
    return find_placeholders(source) - find_placeholders(cleaned)


class DocumentPipeline:
    """Runs the automatic steps and the manual approval for one document at a time."""

    def __init__(
        self,
        storage: Storage,
        ocr: OCREngine,
        deidentifier: DeidentificationEngine,
        llm: LLMEngine,
        db_path: str | None = None,
    ):
        self.storage = storage
        self.ocr = ocr
        self.deidentifier = deidentifier
        self.llm = llm
        self.db_path = db_path
        self.documents = DocumentRepository(db_path)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _load(self, document_id: str, error_cls: type[PipelineError]) -> Document:
        document = self.documents.get_document(document_id)
        if document is None:
            raise error_cls(
                f"Document not found: {document_id}", document_id, REASON_NOT_FOUND
            )
        return document

    def _processed(self, document_id: str) -> ProcessedDocument | None:
        return self.documents.get_processed(document_id)

    @contextmanager
    def _track(self, document: Document, step: str):
        """Scope logs to the document and record the step outcome in metrics."""
        start = time.time()
        with claim_context(document.claim_id, document_id=document.id, step=step):
            try:
                yield
            except PipelineError as e:
                get_metrics().record_step(
                    document.claim_id,
                    step,
                    document.id,
                    success=False,
                    latency_ms=(time.time() - start) * 1000,
                    reason=e.reason,
                )
                logger.warning("Step %s failed: %s (reason=%s)", step, e.message, e.reason)
                raise
            get_metrics().record_step(
                document.claim_id,
                step,
                document.id,
                success=True,
                latency_ms=(time.time() - start) * 1000,
            )

    def _commit(self, error_cls: type[PipelineError], document_id: str, write, *args):
        """Run a repository write, mapping status conflicts to the step's error."""
        try:
            return write(document_id, *args)
        except InvalidTransitionError as e:
            raise error_cls(str(e), document_id, REASON_INVALID_STATE, e) from e
        except ValueError as e:
            raise error_cls(str(e), document_id, REASON_NOT_FOUND, e) from e

    def _status_event(self, document: Document, new_status: DocumentStatus) -> None:
        if new_status is not document.status:
            log_claim_event(
                logger,
                "document_status_changed",
                claim_id=document.claim_id,
                document_id=document.id,
                old_status=document.status.value,
                new_status=new_status.value,
            )

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    def extract(self, document_id: str) -> str:
        """Download the stored file, run OCR and store ``ocr_text`` (status ``ocr_complete``).

        Raises:
            ExtractionError: Missing document or file, download failure, OCR
                engine failure or rejected credentials. Nothing is committed.
        """
        document = self._load(document_id, ExtractionError)
        with self._track(document, "extract"):
            if not document.file_path:
                raise ExtractionError(
                    "Document has no stored file", document_id, REASON_MISSING_SOURCE
                )
            if document.status > DocumentStatus.OCR_COMPLETE:
                raise ExtractionError(
                    f"Document is already {document.status.value}; extraction would move it backward",
                    document_id,
                    REASON_INVALID_STATE,
                )
            try:
                data = self.storage.download(document.file_path)
                text = self.ocr.extract_text(data, document.mime_type)
            except EngineError as e:
                raise ExtractionError(
                    f"Text extraction failed: {e}", document_id, reason_for_engine_error(e), e
                ) from e
            new_status = self._commit(
                ExtractionError, document_id, self.documents.record_ocr_result, text
            )
            self._status_event(document, new_status)
            logger.info("Extracted %d characters", len(text))
        return text

    def anonymize(self, document_id: str) -> str:
        """De-identify ``ocr_text`` and store ``anonymized_text`` (status ``anonymized``).

        Raises:
            AnonymizationError: Missing OCR text, wrong status, or engine failure.
        """
        document = self._load(document_id, AnonymizationError)
        with self._track(document, "anonymize"):
            processed = self._processed(document_id)
            source = processed.ocr_text if processed else None
            if not source or not source.strip():
                raise AnonymizationError(
                    "No OCR text found", document_id, REASON_MISSING_SOURCE
                )
            if not DocumentStatus.OCR_COMPLETE <= document.status <= DocumentStatus.ANONYMIZED:
                raise AnonymizationError(
                    f"Document is {document.status.value}; anonymization needs ocr_complete",
                    document_id,
                    REASON_INVALID_STATE,
                )
            try:
                redacted = self.deidentifier.deidentify(source, DEFAULT_INFO_TYPES)
            except EngineError as e:
                raise AnonymizationError(
                    f"Anonymization failed: {e}", document_id, reason_for_engine_error(e), e
                ) from e
            new_status = self._commit(
                AnonymizationError, document_id, self.documents.record_anonymized, redacted
            )
            self._status_event(document, new_status)
            logger.info(
                "Anonymized %d characters, %d placeholder kinds",
                len(redacted),
                len(find_placeholders(redacted)),
            )
        return redacted

    def clean(self, document_id: str) -> str:
        """Fix grammar in ``anonymized_text`` and store ``cleaned_text``.

        The status advances to ``ready_for_review`` only from an earlier
        status; an approved document keeps its status.

        Raises:
            CleaningError: Missing source text, engine failure (reason
                ``rate_limited``, ``payment_required``, ``engine_error`` or
                ``invalid_response``), or placeholder tokens lost by the model
                (``placeholder_mismatch``).
        """
        document = self._load(document_id, CleaningError)
        with self._track(document, "clean"):
            processed = self._processed(document_id)
            source = processed.anonymized_text if processed else None
            if not source or not source.strip():
                raise CleaningError(
                    "No anonymized text available for cleaning", document_id, REASON_MISSING_SOURCE
                )
            if document.status.is_terminal:
                raise CleaningError(
                    "Document already has a report; its text is final",
                    document_id,
                    REASON_INVALID_STATE,
                )
            try:
                cleaned = self.llm.complete(
                    CLEANING_SYSTEM_PROMPT,
                    source,
                    claim_id=document.claim_id,
                    purpose="clean",
                )
            except EngineError as e:
                raise CleaningError(
                    f"Text cleaning failed: {e}", document_id, reason_for_engine_error(e), e
                ) from e
            lost = missing_placeholders(source, cleaned)
            if lost:
                raise CleaningError(
                    f"Cleaned text altered placeholder tokens: {', '.join(sorted(lost))}",
                    document_id,
                    REASON_PLACEHOLDER_MISMATCH,
                )
            new_status = self._commit(
                CleaningError, document_id, self.documents.record_cleaned, cleaned
            )
            self._status_event(document, new_status)
            logger.info("Cleaned text: %d -> %d characters", len(source), len(cleaned))
        return cleaned

    def approve(self, document_id: str, session: SessionContext, final_text: str) -> ProcessedDocument:
        """Store the reviewer's final text and mark the document ``approved``.

        Raises:
            ApprovalError: Document missing, not ``ready_for_review``, or blank text.
        """
        document = self._load(document_id, ApprovalError)
        with self._track(document, "approve"):
            if document.status is not DocumentStatus.READY_FOR_REVIEW:
                raise ApprovalError(
                    f"Document is {document.status.value}; only ready_for_review documents can be approved",
                    document_id,
                    REASON_INVALID_STATE,
                )
            if not final_text or not final_text.strip():
                raise ApprovalError("Approved text must not be empty", document_id, REASON_EMPTY_TEXT)
            processed = self._commit(
                ApprovalError,
                document_id,
                self.documents.record_approval,
                final_text,
                session.user_id,
            )
            self._status_event(document, DocumentStatus.APPROVED)
        return processed


def build_document_pipeline(db_path: str | None = None) -> DocumentPipeline:
    """DocumentPipeline wired to the engines configured in the environment."""
    from claim_pipeline.config.llm import get_llm
    from claim_pipeline.engines import (
        build_deidentification_engine,
        build_ocr_engine,
        build_storage,
    )

    return DocumentPipeline(
        storage=build_storage(),
        ocr=build_ocr_engine(),
        deidentifier=build_deidentification_engine(),
        llm=get_llm(),
        db_path=db_path,
    )
