"""Batch processing of a claim's newly uploaded documents."""

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from claim_pipeline.config.settings import BATCH_STEP_DELAY_SECONDS
from claim_pipeline.db.repository import DocumentRepository
from claim_pipeline.models.claim import Document
from claim_pipeline.models.status import DocumentStatus
from claim_pipeline.models.workflow import BatchProgress, BatchResult, DocumentOutcome
from claim_pipeline.observability.logger import claim_context, get_logger, log_claim_event
from claim_pipeline.pipeline.aggregation import recalculate_claim_status
from claim_pipeline.pipeline.errors import PipelineError
from claim_pipeline.pipeline.steps import DocumentPipeline

logger = get_logger(__name__)

# Automatic steps in order; approval stays manual
BATCH_STEPS = ("extract", "anonymize", "clean")


@dataclass(frozen=True)
class BatchTask:
    """One document queued for the automatic steps."""

    index: int
    document: Document


def build_tasks(documents: list[Document]) -> deque[BatchTask]:
    """Queue the documents still in ``uploaded``, keeping their creation order."""
    pending = [d for d in documents if d.status is DocumentStatus.UPLOADED]
    return deque(BatchTask(index=i, document=d) for i, d in enumerate(pending))


def _run_task(pipeline: DocumentPipeline, task: BatchTask, step_delay: float) -> DocumentOutcome:
    document = task.document
    completed: list[str] = []
    for position, step in enumerate(BATCH_STEPS):
        if position and step_delay > 0:
            time.sleep(step_delay)
        try:
            getattr(pipeline, step)(document.id)
        except PipelineError as e:
            current = pipeline.documents.get_document(document.id)
            return DocumentOutcome(
                document_id=document.id,
                file_name=document.file_name,
                success=False,
                status=current.status if current else document.status,
                completed_steps=completed,
                failed_step=step,
                error=e.user_message,
                reason=e.reason,
            )
        completed.append(step)
    current = pipeline.documents.get_document(document.id)
    return DocumentOutcome(
        document_id=document.id,
        file_name=document.file_name,
        success=True,
        status=current.status if current else DocumentStatus.READY_FOR_REVIEW,
        completed_steps=completed,
    )


def process_claim_documents(
    claim_id: str,
    pipeline: DocumentPipeline,
    on_progress: Callable[[BatchProgress], None] | None = None,
    step_delay: float | None = None,
) -> BatchResult:
    """Run extract, anonymize and clean on every ``uploaded`` document of a claim.

    Documents are processed one at a time in creation order. A PipelineError
    on one document is recorded in its outcome and the batch moves on to the
    next document; any other exception propagates.

    Args:
        claim_id: Claim whose documents to process.
        pipeline: Configured DocumentPipeline.
        on_progress: Called after each document with its outcome.
        step_delay: Seconds to wait between steps (default from
            CLAIM_PIPELINE_BATCH_STEP_DELAY).

    Returns:
        BatchResult with per-document outcomes.
    """
    delay = BATCH_STEP_DELAY_SECONDS if step_delay is None else step_delay
    documents = DocumentRepository(pipeline.db_path).list_documents(claim_id)
    tasks = build_tasks(documents)
    result = BatchResult(claim_id=claim_id, total=len(tasks))

    with claim_context(claim_id):
        log_claim_event(logger, "batch_started", claim_id=claim_id, documents=len(tasks))
        while tasks:
            task = tasks.popleft()
            outcome = _run_task(pipeline, task, delay)
            result.outcomes.append(outcome)
            if outcome.success:
                result.processed += 1
            else:
                result.failed += 1
            if on_progress is not None:
                on_progress(
                    BatchProgress(claim_id=claim_id, index=task.index, total=result.total, outcome=outcome)
                )

        recalculate_claim_status(claim_id, db_path=pipeline.db_path)
        log_claim_event(
            logger,
            "batch_finished",
            claim_id=claim_id,
            processed=result.processed,
            failed=result.failed,
            total=result.total,
        )
    return result
