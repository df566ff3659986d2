"""Claim creation, document upload and deletion."""

import mimetypes
import uuid
from pathlib import PurePath

from claim_pipeline.auth.session import SessionContext
from claim_pipeline.config.settings import ALLOWED_UPLOAD_EXTENSIONS, MAX_UPLOAD_BYTES
from claim_pipeline.db.repository import ClaimRepository, DocumentRepository
from claim_pipeline.engines.storage import Storage
from claim_pipeline.models.claim import Claim, ClaimInput, Document
from claim_pipeline.observability.logger import get_logger, log_claim_event
from claim_pipeline.pipeline.aggregation import recalculate_claim_status

logger = get_logger(__name__)

_MIME_OVERRIDES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".tiff": "image/tiff",
}


class UploadRejectedError(ValueError):
    """The file is empty, too large or of a type the OCR engine cannot read."""


def guess_mime_type(file_name: str) -> str:
    suffix = PurePath(file_name).suffix.lower()
    if suffix in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[suffix]
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or "application/octet-stream"


def validate_upload(file_name: str, size: int) -> None:
    """Raises UploadRejectedError unless the file may be uploaded."""
    suffix = PurePath(file_name).suffix.lower()
    if suffix not in ALLOWED_UPLOAD_EXTENSIONS:
        raise UploadRejectedError(
            f"Unsupported file type {suffix or '(none)'}; allowed: {', '.join(ALLOWED_UPLOAD_EXTENSIONS)}"
        )
    if size <= 0:
        raise UploadRejectedError("File is empty")
    if size > MAX_UPLOAD_BYTES:
        raise UploadRejectedError(
            f"File is {size} bytes; the limit is {MAX_UPLOAD_BYTES // (1024 * 1024)} MB"
        )


def create_claim(claim_input: ClaimInput, session: SessionContext, db_path: str | None = None) -> Claim:
    """Create a claim owned by the acting user.

    Raises:
        sqlite3.IntegrityError: If the claim number already exists.
    """
    claim = ClaimRepository(db_path).create_claim(claim_input, created_by=session.user_id)
    log_claim_event(logger, "claim_created", claim_id=claim.id, claim_number=claim.claim_number)
    return claim


def upload_document(
    claim_id: str,
    file_name: str,
    content: bytes,
    session: SessionContext,
    storage: Storage,
    db_path: str | None = None,
) -> Document:
    """Store a file for a claim and register it with status ``uploaded``.

    The blob goes to ``<claim_id>/<uuid>_<file_name>``. If the database
    insert fails the blob is removed again.

    Raises:
        UploadRejectedError: Wrong type, empty or too large.
        ValueError: If the claim does not exist.
        StorageError: If the blob cannot be written.
    """
    name = PurePath(file_name).name
    validate_upload(name, len(content))
    claims = ClaimRepository(db_path)
    if claims.get_claim(claim_id) is None:
        raise ValueError(f"Claim not found: {claim_id}")

    path = storage.upload(f"{claim_id}/{uuid.uuid4()}_{name}", content)
    try:
        document = DocumentRepository(db_path).add_document(
            claim_id=claim_id,
            file_name=name,
            file_path=path,
            file_size=len(content),
            file_type=guess_mime_type(name),
            uploaded_by=session.user_id,
        )
    except Exception:
        storage.delete(path)
        raise
    log_claim_event(
        logger, "document_uploaded", claim_id=claim_id, document_id=document.id, size=len(content)
    )
    return document


def delete_document(
    document_id: str, storage: Storage | None = None, db_path: str | None = None
) -> Document:
    """Delete a document row (processed text and reports cascade) and its blob."""
    document = DocumentRepository(db_path).delete_document(document_id)
    if storage is not None and document.file_path:
        storage.delete(document.file_path)
    recalculate_claim_status(document.claim_id, db_path=db_path)
    log_claim_event(logger, "document_deleted", claim_id=document.claim_id, document_id=document_id)
    return document
