"""Shared pytest fixtures for all test files."""

import os
import tempfile

import pytest

from claim_pipeline.auth.session import Role, SessionContext
from claim_pipeline.db.database import init_db
from claim_pipeline.models.claim import ClaimInput

from fakes import FakeDeidentifier, FakeEmbedder, FakeLLM, FakeOCR, FakeStorage


@pytest.fixture(autouse=True)
def temp_db():
    """Use a temporary SQLite DB for tests."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    init_db(path)
    prev = os.environ.get("CLAIMS_DB_PATH")
    os.environ["CLAIMS_DB_PATH"] = path
    try:
        yield path
    finally:
        if prev is None:
            os.environ.pop("CLAIMS_DB_PATH", None)
        else:
            os.environ["CLAIMS_DB_PATH"] = prev
        try:
            os.unlink(path)
        except OSError:
            # Ignore errors when cleaning up the temporary DB file (e.g., if already removed).
            pass


@pytest.fixture(autouse=True)
def reset_global_metrics():
    """Reset the global ClaimMetrics singleton before and after each test."""
    from claim_pipeline.observability.metrics import reset_metrics

    reset_metrics()
    yield
    reset_metrics()


# ============================================================================
# Engines
# ============================================================================


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def ocr():
    return FakeOCR()


@pytest.fixture
def deidentifier():
    return FakeDeidentifier()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def pipeline(storage, ocr, deidentifier, llm, temp_db):
    from claim_pipeline.pipeline.steps import DocumentPipeline

    return DocumentPipeline(storage, ocr, deidentifier, llm, db_path=temp_db)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def knowledge_base(embedder, temp_db):
    from claim_pipeline.rag.knowledge_base import KnowledgeBase

    return KnowledgeBase(embedder, db_path=temp_db, chunk_size=200)


# ============================================================================
# Sessions and data
# ============================================================================


@pytest.fixture
def reviewer_session():
    return SessionContext(user_id="likvidator-1", roles=frozenset({Role.LIKVIDATOR}))


@pytest.fixture
def admin_session():
    return SessionContext(user_id="admin-1", roles=frozenset({Role.ADMIN}))


@pytest.fixture
def claim(temp_db, reviewer_session):
    from claim_pipeline.pipeline.intake import create_claim

    return create_claim(
        ClaimInput(
            claim_number="PU-2025-001",
            client_name="Ján Novák",
            policy_number="POL-123456",
            claim_type="Úraz",
        ),
        reviewer_session,
        db_path=temp_db,
    )


@pytest.fixture
def add_document(claim, storage, reviewer_session, temp_db):
    """Upload a document whose OCR output is the given text."""
    from claim_pipeline.pipeline.intake import upload_document

    def _add(text: str, file_name: str = "sprava.pdf", claim_id: str | None = None):
        return upload_document(
            claim_id or claim.id,
            file_name,
            text.encode("utf-8"),
            reviewer_session,
            storage,
            db_path=temp_db,
        )

    return _add
