"""Shared logic for pipeline tools (used by the MCP server)."""

import json
import logging
from typing import Optional

from claim_pipeline.auth.session import PermissionDeniedError, resolve_session
from claim_pipeline.db.repository import ClaimRepository, DocumentRepository, ReportRepository
from claim_pipeline.engines.errors import EngineError
from claim_pipeline.observability import get_metrics
from claim_pipeline.pipeline.aggregation import get_claim_workflow
from claim_pipeline.pipeline.batch import process_claim_documents
from claim_pipeline.pipeline.errors import PipelineError
from claim_pipeline.pipeline.reports import ReportGenerator, build_report_generator
from claim_pipeline.pipeline.steps import DocumentPipeline, build_document_pipeline
from claim_pipeline.rag.knowledge_base import KnowledgeBase, build_knowledge_base

logger = logging.getLogger(__name__)

STEP_NAMES = ("extract", "anonymize", "clean")


def _error(message: str, **data) -> str:
    return json.dumps({"error": message, **data})


def get_workflow_status_impl(claim_id: str) -> str:
    if not claim_id or not claim_id.strip():
        return _error("claim_id is required")
    claim = ClaimRepository().get_claim(claim_id)
    if claim is None:
        return _error(f"Claim not found: {claim_id}")
    summary = get_claim_workflow(claim_id)
    return json.dumps({
        "claim_id": claim_id,
        "claim_number": claim.claim_number,
        "claim_status": claim.status.value,
        **summary.model_dump(mode="json"),
    })


def list_documents_impl(claim_id: str) -> str:
    documents = DocumentRepository().list_documents(claim_id)
    return json.dumps([
        {
            "id": d.id,
            "file_name": d.file_name,
            "status": d.status.value,
            "created_at": d.created_at,
        }
        for d in documents
    ])


def get_document_text_impl(document_id: str) -> str:
    """Current texts of a document, used by reviewers before approval."""
    repo = DocumentRepository()
    document = repo.get_document(document_id)
    if document is None:
        return _error(f"Document not found: {document_id}")
    processed = repo.get_processed(document_id)
    return json.dumps({
        "document_id": document_id,
        "status": document.status.value,
        "review_text": processed.review_source_text if processed else None,
        "reviewed_text": processed.reviewed_text if processed else None,
    })


def run_document_step_impl(
    document_id: str, step: str, pipeline: Optional[DocumentPipeline] = None
) -> str:
    if step not in STEP_NAMES:
        return _error(f"Unknown step: {step}", allowed=list(STEP_NAMES))
    pipeline = pipeline or build_document_pipeline()
    try:
        text = getattr(pipeline, step)(document_id)
    except PipelineError as e:
        return json.dumps(e.to_dict())
    document = pipeline.documents.get_document(document_id)
    return json.dumps({
        "document_id": document_id,
        "step": step,
        "status": document.status.value if document else None,
        "text_length": len(text),
    })


def approve_document_impl(
    document_id: str,
    user_id: str,
    final_text: str,
    pipeline: Optional[DocumentPipeline] = None,
) -> str:
    session = resolve_session(user_id)
    pipeline = pipeline or build_document_pipeline()
    try:
        processed = pipeline.approve(document_id, session, final_text)
    except PipelineError as e:
        return json.dumps(e.to_dict())
    return json.dumps({
        "document_id": document_id,
        "status": "approved",
        "reviewed_by": processed.reviewed_by,
        "reviewed_at": processed.reviewed_at,
    })


def process_claim_documents_impl(claim_id: str, pipeline: Optional[DocumentPipeline] = None) -> str:
    if ClaimRepository().get_claim(claim_id) is None:
        return _error(f"Claim not found: {claim_id}")
    pipeline = pipeline or build_document_pipeline()
    result = process_claim_documents(claim_id, pipeline)
    return json.dumps({
        **result.model_dump(mode="json"),
        "message": result.message,
    })


def generate_document_report_impl(
    document_id: str, user_id: str, generator: Optional[ReportGenerator] = None
) -> str:
    session = resolve_session(user_id)
    generator = generator or build_report_generator()
    try:
        report = generator.generate_document_report(document_id, session)
    except PipelineError as e:
        return json.dumps(e.to_dict())
    return report.model_dump_json()


def generate_claim_report_impl(
    claim_id: str,
    user_id: str,
    context_ids: Optional[list[str]] = None,
    custom_prompt: Optional[str] = None,
    analysis_type_id: Optional[str] = None,
    generator: Optional[ReportGenerator] = None,
) -> str:
    session = resolve_session(user_id)
    generator = generator or build_report_generator()
    try:
        report = generator.generate_claim_report(
            claim_id,
            session,
            context_ids=context_ids,
            custom_prompt=custom_prompt,
            analysis_type_id=analysis_type_id,
        )
    except PipelineError as e:
        return json.dumps(e.to_dict())
    return report.model_dump_json()


def get_reports_impl(claim_id: str) -> str:
    reports = ReportRepository().list_reports(claim_id)
    return json.dumps([r.model_dump(mode="json") for r in reports])


def get_document_history_impl(document_id: str) -> str:
    repo = DocumentRepository()
    if repo.get_document(document_id) is None:
        return _error(f"Document not found: {document_id}")
    return json.dumps(repo.get_document_history(document_id), default=str)


def search_knowledge_base_impl(
    query: str,
    policy_types: Optional[list[str]] = None,
    categories: Optional[list[str]] = None,
    match_count: Optional[int] = None,
    match_threshold: Optional[float] = None,
    knowledge_base: Optional[KnowledgeBase] = None,
) -> str:
    if not query or not query.strip():
        return json.dumps([])
    knowledge_base = knowledge_base or build_knowledge_base()
    try:
        matches = knowledge_base.search(
            query,
            policy_types=policy_types,
            categories=categories,
            match_count=match_count,
            match_threshold=match_threshold,
        )
    except (EngineError, ValueError) as e:
        return _error(str(e))
    return json.dumps([
        {
            "id": m.entry.id,
            "title": m.entry.title,
            "chunk_text": m.entry.chunk_text,
            "similarity": round(m.similarity, 4),
            "policy_types": m.entry.policy_types,
            "categories": m.entry.categories,
        }
        for m in matches
    ])


def ingest_knowledge_impl(
    user_id: str,
    title: str,
    content: str,
    policy_types: Optional[list[str]] = None,
    categories: Optional[list[str]] = None,
    knowledge_base: Optional[KnowledgeBase] = None,
) -> str:
    session = resolve_session(user_id)
    knowledge_base = knowledge_base or build_knowledge_base()
    try:
        ids = knowledge_base.ingest(
            title, content, session, policy_types=policy_types, categories=categories
        )
    except PermissionDeniedError as e:
        return _error(str(e))
    except (EngineError, ValueError) as e:
        return _error(str(e))
    return json.dumps({"title": title.strip(), "chunks": len(ids), "ids": ids})


def get_claim_metrics_impl(claim_id: Optional[str] = None) -> str:
    metrics = get_metrics()
    if claim_id:
        summary = metrics.get_claim_summary(claim_id)
        if summary is None:
            return _error(f"No metrics found for claim: {claim_id}")
        return json.dumps(summary.to_dict(), default=str)
    return json.dumps({
        "global_stats": metrics.get_global_stats(),
        "claims": [s.to_dict() for s in metrics.get_all_summaries()],
    }, default=str)
