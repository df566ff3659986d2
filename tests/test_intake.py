"""Tests for claim creation, document upload and deletion."""

import sqlite3
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from claim_pipeline.db.repository import ClaimRepository, DocumentRepository
from claim_pipeline.models.claim import ClaimInput
from claim_pipeline.models.status import ClaimStatus, DocumentStatus
from claim_pipeline.pipeline.intake import (
    UploadRejectedError,
    create_claim,
    delete_document,
    guess_mime_type,
    upload_document,
    validate_upload,
)


class TestClaimInput:
    def test_fields_are_stripped(self):
        claim_input = ClaimInput(
            claim_number=" PU-1 ", client_name="Ján", policy_number="P", claim_type="Úraz"
        )
        assert claim_input.claim_number == "PU-1"

    def test_blank_field_rejected(self):
        with pytest.raises(ValidationError):
            ClaimInput(claim_number="  ", client_name="Ján", policy_number="P", claim_type="Úraz")


class TestCreateClaim:
    def test_owner_is_acting_user(self, claim, reviewer_session):
        assert claim.created_by == reviewer_session.user_id
        assert claim.status is ClaimStatus.NEW
        assert claim.prompt_info()["claim_type"] == "Úraz"

    def test_duplicate_claim_number(self, claim, reviewer_session, temp_db):
        with pytest.raises(sqlite3.IntegrityError):
            create_claim(
                ClaimInput(claim_number="PU-2025-001", client_name="X", policy_number="Y", claim_type="Z"),
                reviewer_session,
                db_path=temp_db,
            )


class TestValidateUpload:
    @pytest.mark.parametrize("name", ["scan.pdf", "FOTO.JPG", "x.jpeg", "y.png", "z.tiff"])
    def test_allowed(self, name):
        validate_upload(name, 100)

    @pytest.mark.parametrize("name", ["notes.txt", "archive.zip", "noextension"])
    def test_unsupported_type(self, name):
        with pytest.raises(UploadRejectedError, match="Unsupported file type"):
            validate_upload(name, 100)

    def test_empty_file(self):
        with pytest.raises(UploadRejectedError, match="empty"):
            validate_upload("scan.pdf", 0)

    def test_too_large(self):
        from claim_pipeline.config.settings import MAX_UPLOAD_BYTES

        with pytest.raises(UploadRejectedError, match="limit"):
            validate_upload("scan.pdf", MAX_UPLOAD_BYTES + 1)

    def test_rejection_is_value_error(self):
        assert issubclass(UploadRejectedError, ValueError)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("a.pdf", "application/pdf"),
        ("a.JPG", "image/jpeg"),
        ("a.jpeg", "image/jpeg"),
        ("a.png", "image/png"),
        ("a.tiff", "image/tiff"),
    ],
)
def test_guess_mime_type(name, expected):
    assert guess_mime_type(name) == expected


class TestUploadDocument:
    def test_upload_stores_blob_and_row(self, claim, storage, reviewer_session, temp_db):
        document = upload_document(claim.id, "správa.pdf", b"%PDF", reviewer_session, storage, db_path=temp_db)

        assert document.status is DocumentStatus.UPLOADED
        assert document.file_name == "správa.pdf"
        assert document.file_size == 4
        assert document.file_type == "application/pdf"
        assert document.uploaded_by == reviewer_session.user_id
        assert document.file_path.startswith(f"{claim.id}/")
        assert document.file_path.endswith("_správa.pdf")
        assert storage.blobs[document.file_path] == b"%PDF"
        assert ClaimRepository(temp_db).get_claim(claim.id).status is ClaimStatus.IN_PROGRESS

    def test_directory_components_are_dropped(self, claim, storage, reviewer_session, temp_db):
        document = upload_document(claim.id, "../../etc/scan.pdf", b"x", reviewer_session, storage, db_path=temp_db)
        assert document.file_name == "scan.pdf"
        assert ".." not in document.file_path

    def test_unknown_claim(self, storage, reviewer_session, temp_db):
        with pytest.raises(ValueError, match="Claim not found"):
            upload_document("missing", "a.pdf", b"x", reviewer_session, storage, db_path=temp_db)
        assert storage.blobs == {}

    def test_rejected_upload_stores_nothing(self, claim, storage, reviewer_session, temp_db):
        with pytest.raises(UploadRejectedError):
            upload_document(claim.id, "a.exe", b"x", reviewer_session, storage, db_path=temp_db)
        assert storage.blobs == {}

    def test_blob_removed_when_insert_fails(self, claim, storage, reviewer_session, temp_db):
        with patch.object(DocumentRepository, "add_document", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(sqlite3.OperationalError):
                upload_document(claim.id, "a.pdf", b"x", reviewer_session, storage, db_path=temp_db)
        assert storage.blobs == {}


class TestDeleteDocument:
    def test_delete_removes_row_and_blob(self, claim, add_document, storage, temp_db):
        document = add_document("text")
        delete_document(document.id, storage=storage, db_path=temp_db)
        assert DocumentRepository(temp_db).get_document(document.id) is None
        assert document.file_path not in storage.blobs

    def test_delete_recalculates_claim(self, claim, add_document, temp_db):
        first = add_document("a")
        add_document("b")
        delete_document(first.id, db_path=temp_db)
        assert ClaimRepository(temp_db).get_claim(claim.id).status is ClaimStatus.IN_PROGRESS

    def test_delete_missing(self, temp_db):
        with pytest.raises(ValueError):
            delete_document("missing", db_path=temp_db)
