"""Shared fixtures for integration tests.

Integration tests run the real repositories, local file storage, batch
runner, report generator and knowledge base against a temporary database.
Only the network-bound engines (Document AI, DLP, the LLM and embeddings)
are replaced by the in-memory fakes.
"""

from pathlib import Path

import pytest

from claim_pipeline.engines.storage import LocalFileStorage

from fakes import FakeLLM


@pytest.fixture
def local_storage(tmp_path: Path) -> LocalFileStorage:
    """File storage rooted in a per-test temporary directory."""
    return LocalFileStorage(tmp_path / "storage")


@pytest.fixture
def report_llm() -> FakeLLM:
    """LLM used for report generation; tests queue its responses."""
    return FakeLLM()


@pytest.fixture
def e2e_pipeline(local_storage, ocr, deidentifier, llm, temp_db):
    from claim_pipeline.pipeline.steps import DocumentPipeline

    return DocumentPipeline(local_storage, ocr, deidentifier, llm, db_path=temp_db)


@pytest.fixture
def e2e_reports(report_llm, knowledge_base, temp_db):
    from claim_pipeline.pipeline.reports import ReportGenerator

    return ReportGenerator(report_llm, db_path=temp_db, knowledge_base=knowledge_base)


@pytest.fixture
def upload(claim, local_storage, reviewer_session, temp_db):
    """Upload a file to the claim through intake; the fake OCR reads back its bytes."""
    from claim_pipeline.pipeline.intake import upload_document

    def _upload(text: str, file_name: str = "sprava.pdf"):
        return upload_document(
            claim.id, file_name, text.encode("utf-8"), reviewer_session, local_storage, db_path=temp_db
        )

    return _upload
