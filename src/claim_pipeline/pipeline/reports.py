"""LLM analysis reports for single documents and whole claims."""

import json
import re

from pydantic import ValidationError

from claim_pipeline.auth.session import SessionContext
from claim_pipeline.db.constants import REPORT_SCOPE_CLAIM, REPORT_SCOPE_DOCUMENT
from claim_pipeline.db.reference import AnalysisTypeRepository, ContextRepository
from claim_pipeline.db.repository import ClaimRepository, DocumentRepository, ReportRepository
from claim_pipeline.engines.errors import EngineError
from claim_pipeline.engines.llm import LLMEngine
from claim_pipeline.models.claim import REPORT_FIELDS, Claim, Report, ReportContent
from claim_pipeline.models.status import DocumentStatus, InvalidTransitionError
from claim_pipeline.observability.logger import claim_context, get_logger, log_claim_event
from claim_pipeline.pipeline.aggregation import recalculate_claim_status
from claim_pipeline.pipeline.errors import (
    REASON_ENGINE_ERROR,
    REASON_INVALID_RESPONSE,
    REASON_INVALID_STATE,
    REASON_MISSING_SOURCE,
    REASON_NOT_FOUND,
    ReportGenerationError,
    reason_for_engine_error,
)
from claim_pipeline.pipeline.prompts import (
    JSON_RESPONSE_FORMAT,
    claim_report_system_prompt,
    claim_report_user_prompt,
    document_report_system_prompt,
    document_report_user_prompt,
    format_documents,
)
from claim_pipeline.rag.knowledge_base import KnowledgeBase, format_knowledge_context
from claim_pipeline.utils.sanitization import sanitize_claim_info, sanitize_custom_instruction

logger = get_logger(__name__)

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.S | re.I)


def parse_report_content(raw: str, document_id: str | None = None) -> ReportContent:
    """Parse the model output into the five-key report object.

    Markdown code fences around the JSON are tolerated.

    Raises:
        ReportGenerationError: Output is not a JSON object, or a key is
            missing, null, blank or not a string.
    """
    text = (raw or "").strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ReportGenerationError(
            "AI response is not valid JSON", document_id, REASON_INVALID_RESPONSE, e
        ) from e
    if not isinstance(data, dict):
        raise ReportGenerationError(
            "AI response is not a JSON object", document_id, REASON_INVALID_RESPONSE
        )
    missing = [k for k in REPORT_FIELDS if data.get(k) is None]
    if missing:
        raise ReportGenerationError(
            f"AI response is missing report fields: {', '.join(missing)}",
            document_id,
            REASON_INVALID_RESPONSE,
        )
    try:
        return ReportContent(**{k: data[k] for k in REPORT_FIELDS})
    except ValidationError as e:
        bad = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ReportGenerationError(
            f"AI response has invalid report fields: {bad}", document_id, REASON_INVALID_RESPONSE, e
        ) from e


class ReportGenerator:
    """Builds report prompts, calls the LLM and persists the report atomically."""

    def __init__(
        self,
        llm: LLMEngine,
        db_path: str | None = None,
        knowledge_base: KnowledgeBase | None = None,
    ):
        self.llm = llm
        self.db_path = db_path
        self.knowledge_base = knowledge_base
        self.claims = ClaimRepository(db_path)
        self.documents = DocumentRepository(db_path)
        self.reports = ReportRepository(db_path)
        self.contexts = ContextRepository(db_path)
        self.analysis_types = AnalysisTypeRepository(db_path)

    def _claim(self, claim_id: str, document_id: str | None = None) -> Claim:
        claim = self.claims.get_claim(claim_id)
        if claim is None:
            raise ReportGenerationError(f"Claim not found: {claim_id}", document_id, REASON_NOT_FOUND)
        return claim

    def _context_text(
        self, source_text: str, context_ids: list[str] | None, document_id: str | None
    ) -> str:
        blocks = [c.as_prompt_block() for c in self.contexts.list_active(context_ids)]
        if self.knowledge_base is not None:
            try:
                matches = self.knowledge_base.search(source_text)
            except EngineError as e:
                raise ReportGenerationError(
                    f"Knowledge base search failed: {e}", document_id, reason_for_engine_error(e), e
                ) from e
            except ValueError as e:
                raise ReportGenerationError(
                    f"Knowledge base search failed: {e}", document_id, REASON_ENGINE_ERROR, e
                ) from e
            if matches:
                blocks.append(format_knowledge_context(matches))
        return "\n\n".join(blocks)

    def _complete(self, system_prompt: str, user_prompt: str, claim_id: str, document_id: str | None) -> ReportContent:
        try:
            raw = self.llm.complete(
                system_prompt,
                user_prompt,
                response_format=JSON_RESPONSE_FORMAT,
                claim_id=claim_id,
                purpose="report",
            )
        except EngineError as e:
            raise ReportGenerationError(
                f"Report generation failed: {e}", document_id, reason_for_engine_error(e), e
            ) from e
        return parse_report_content(raw, document_id)

    def _persist(self, document_id: str, **kwargs) -> Report:
        try:
            return self.reports.create_report(**kwargs)
        except InvalidTransitionError as e:
            raise ReportGenerationError(str(e), document_id, REASON_INVALID_STATE, e) from e

    def generate_document_report(self, document_id: str, session: SessionContext) -> Report:
        """Analyze one approved document and mark it ``report_generated``.

        Raises:
            ReportGenerationError: Document missing or not approved, no
                reviewed text, engine failure or unusable model output.
                Nothing is persisted on failure.
        """
        document = self.documents.get_document(document_id)
        if document is None:
            raise ReportGenerationError(f"Document not found: {document_id}", document_id, REASON_NOT_FOUND)

        with claim_context(document.claim_id, document_id=document_id, step="report"):
            if document.status is not DocumentStatus.APPROVED:
                raise ReportGenerationError(
                    f"Document is {document.status.value}; reports need an approved document",
                    document_id,
                    REASON_INVALID_STATE,
                )
            processed = self.documents.get_processed(document_id)
            reviewed = processed.reviewed_text if processed else None
            if not reviewed or not reviewed.strip():
                raise ReportGenerationError(
                    "Document has no reviewed text", document_id, REASON_MISSING_SOURCE
                )
            claim = self._claim(document.claim_id, document_id)

            content = self._complete(
                document_report_system_prompt(),
                document_report_user_prompt(
                    sanitize_claim_info(claim.prompt_info()),
                    reviewed,
                    self._context_text(reviewed, None, document_id),
                ),
                claim.id,
                document_id,
            )
            report = self._persist(
                document_id,
                claim_id=claim.id,
                anchor_document_id=document_id,
                content=content,
                advance_document_ids=[document_id],
                scope=REPORT_SCOPE_DOCUMENT,
                generated_by=session.user_id,
            )
            recalculate_claim_status(claim.id, db_path=self.db_path)
            log_claim_event(
                logger, "report_generated", claim_id=claim.id, report_id=report.id, scope=report.scope
            )
        return report

    def generate_claim_report(
        self,
        claim_id: str,
        session: SessionContext,
        context_ids: list[str] | None = None,
        custom_prompt: str | None = None,
        analysis_type_id: str | None = None,
    ) -> Report:
        """Synthesize one report over all approved documents of a claim.

        Returns the existing claim report when there already is one. The new
        report is anchored to the first document and every constituent
        document moves to ``report_generated`` in the same transaction.

        Args:
            claim_id: Claim to report on.
            session: Acting user.
            context_ids: Insurance context entries to include (all active when None).
            custom_prompt: Extra free-text instruction, sanitized before use.
            analysis_type_id: Analysis type whose system prompt replaces the default.

        Raises:
            ReportGenerationError: No approved document with reviewed text,
                unknown analysis type, engine failure or unusable model output.
        """
        claim = self._claim(claim_id)
        existing = self.reports.get_claim_report(claim_id)
        if existing is not None:
            return existing

        with claim_context(claim_id, step="final_report"):
            sources: list[tuple[str, str, str]] = []
            for document in self.documents.list_documents(claim_id):
                if document.status < DocumentStatus.APPROVED:
                    continue
                processed = self.documents.get_processed(document.id)
                if processed and processed.reviewed_text and processed.reviewed_text.strip():
                    sources.append((document.id, document.file_name, processed.reviewed_text))
            if not sources:
                raise ReportGenerationError(
                    "No approved documents with reviewed text", None, REASON_MISSING_SOURCE
                )

            base_prompt = None
            analysis_type_name = None
            if analysis_type_id:
                analysis_type = self.analysis_types.get_analysis_type(analysis_type_id)
                if analysis_type is None or not analysis_type.is_active:
                    raise ReportGenerationError(
                        f"Analysis type not found: {analysis_type_id}", None, REASON_NOT_FOUND
                    )
                base_prompt = analysis_type.system_prompt
                analysis_type_name = analysis_type.name

            documents_text = format_documents([(name, text) for _, name, text in sources])
            anchor_id = sources[0][0]
            content = self._complete(
                claim_report_system_prompt(base_prompt, sanitize_custom_instruction(custom_prompt)),
                claim_report_user_prompt(
                    sanitize_claim_info(claim.prompt_info()),
                    documents_text,
                    self._context_text(documents_text, context_ids, anchor_id),
                ),
                claim_id,
                None,
            )
            report = self._persist(
                anchor_id,
                claim_id=claim_id,
                anchor_document_id=anchor_id,
                content=content,
                advance_document_ids=[doc_id for doc_id, _, _ in sources],
                scope=REPORT_SCOPE_CLAIM,
                generated_by=session.user_id,
                analysis_type_id=analysis_type_id if analysis_type_id else None,
                analysis_type_name=analysis_type_name,
            )
            recalculate_claim_status(claim_id, db_path=self.db_path)
            log_claim_event(
                logger,
                "report_generated",
                claim_id=claim_id,
                report_id=report.id,
                scope=report.scope,
                documents=len(sources),
            )
        return report


def build_report_generator(db_path: str | None = None) -> ReportGenerator:
    """ReportGenerator using the configured LLM and knowledge base."""
    from claim_pipeline.config.llm import get_llm
    from claim_pipeline.rag.knowledge_base import build_knowledge_base

    return ReportGenerator(get_llm(), db_path=db_path, knowledge_base=build_knowledge_base(db_path))
