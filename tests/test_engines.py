"""Tests for the external engine clients: storage, Document AI, DLP, LiteLLM and Google auth."""

import base64
import json
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import openai
import pytest

from claim_pipeline.engines import build_deidentification_engine, build_ocr_engine, build_storage
from claim_pipeline.engines.dlp import DEFAULT_INFO_TYPES, DLPEngine
from claim_pipeline.engines.errors import (
    EngineAuthError,
    EngineError,
    EngineResponseError,
    PaymentRequiredError,
    RateLimitError,
    StorageError,
)
from claim_pipeline.engines.google_auth import ServiceAccountTokenProvider
from claim_pipeline.engines.llm import LiteLLMEngine
from claim_pipeline.engines.ocr import DocumentAIEngine
from claim_pipeline.engines.storage import LocalFileStorage
from claim_pipeline.observability.metrics import get_metrics


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _json_handler(status_code: int, body, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if isinstance(body, (dict, list)):
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=body)

    return handler


def _token():
    return "access-token"


class TestLocalFileStorage:
    def test_round_trip(self, tmp_path):
        storage = LocalFileStorage(tmp_path)
        assert storage.upload("claim-1/abc_scan.pdf", b"%PDF") == "claim-1/abc_scan.pdf"
        assert storage.download("claim-1/abc_scan.pdf") == b"%PDF"
        assert (tmp_path / "claim-1" / "abc_scan.pdf").exists()

    def test_delete_is_idempotent(self, tmp_path):
        storage = LocalFileStorage(tmp_path)
        storage.upload("c/a.pdf", b"x")
        storage.delete("c/a.pdf")
        storage.delete("c/a.pdf")
        with pytest.raises(StorageError, match="not found"):
            storage.download("c/a.pdf")

    @pytest.mark.parametrize("path", ["../outside.pdf", "c/../../outside.pdf", "/etc/passwd"])
    def test_paths_outside_root_rejected(self, tmp_path, path):
        storage = LocalFileStorage(tmp_path / "root")
        with pytest.raises(StorageError):
            storage.upload(path, b"x")

    def test_empty_path(self, tmp_path):
        with pytest.raises(StorageError, match="empty"):
            LocalFileStorage(tmp_path).download(" ")

    def test_build_storage_uses_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLAIM_PIPELINE_STORAGE_DIR", str(tmp_path))
        assert build_storage().root == tmp_path.resolve()


class TestPostJsonErrorMapping:
    """Status codes map to engine errors the same way for every Google client."""

    @pytest.mark.parametrize(
        "status_code,error_cls",
        [
            (401, EngineAuthError),
            (403, EngineAuthError),
            (429, RateLimitError),
            (500, EngineError),
            (400, EngineError),
        ],
    )
    def test_http_errors(self, status_code, error_cls):
        engine = DocumentAIEngine(
            _token, "proj", "proc", client=_client(_json_handler(status_code, {"error": "x"}))
        )
        with pytest.raises(error_cls) as exc_info:
            engine.extract_text(b"data", "application/pdf")
        assert exc_info.value.status_code == status_code

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        engine = DLPEngine(_token, "proj", client=_client(handler))
        with pytest.raises(EngineError, match="timed out"):
            engine.deidentify("text")

    def test_non_json_body(self):
        engine = DLPEngine(_token, "proj", client=_client(_json_handler(200, "<html>")))
        with pytest.raises(EngineResponseError):
            engine.deidentify("text")

    def test_json_array_body(self):
        engine = DLPEngine(_token, "proj", client=_client(_json_handler(200, [1, 2])))
        with pytest.raises(EngineResponseError):
            engine.deidentify("text")

    def test_token_failure_stops_before_request(self):
        seen = []

        def failing_token():
            raise EngineAuthError("Google Cloud credentials not configured")

        engine = DLPEngine(failing_token, "proj", client=_client(_json_handler(200, {}, seen)))
        with pytest.raises(EngineAuthError):
            engine.deidentify("text")
        assert seen == []


class TestDocumentAIEngine:
    def test_request_and_text(self):
        seen = []
        engine = DocumentAIEngine(
            _token,
            "my-project",
            "proc-1",
            location="eu",
            client=_client(_json_handler(200, {"document": {"text": "Lekárska správa"}}, seen)),
        )

        assert engine.extract_text(b"%PDF-1.7", "application/pdf") == "Lekárska správa"

        request = seen[0]
        assert str(request.url) == (
            "https://eu-documentai.googleapis.com/v1/projects/my-project"
            "/locations/eu/processors/proc-1:process"
        )
        assert request.headers["Authorization"] == "Bearer access-token"
        body = json.loads(request.content)
        assert body == {
            "rawDocument": {
                "content": base64.b64encode(b"%PDF-1.7").decode("ascii"),
                "mimeType": "application/pdf",
            }
        }

    def test_no_document_is_empty_text(self):
        engine = DocumentAIEngine(_token, "p", "proc", client=_client(_json_handler(200, {})))
        assert engine.extract_text(b"x", "image/png") == ""

    def test_document_without_text(self):
        engine = DocumentAIEngine(_token, "p", "proc", client=_client(_json_handler(200, {"document": {}})))
        assert engine.extract_text(b"x", "image/png") == ""

    def test_malformed_document(self):
        engine = DocumentAIEngine(_token, "p", "proc", client=_client(_json_handler(200, {"document": "x"})))
        with pytest.raises(EngineResponseError):
            engine.extract_text(b"x", "image/png")


class TestDLPEngine:
    def test_request_and_value(self):
        seen = []
        engine = DLPEngine(
            _token,
            "my-project",
            min_likelihood="LIKELY",
            client=_client(_json_handler(200, {"item": {"value": "[PERSON_NAME], tel. [PHONE_NUMBER]"}}, seen)),
        )

        result = engine.deidentify("Ján Novák, tel. +421912345678")

        assert result == "[PERSON_NAME], tel. [PHONE_NUMBER]"
        request = seen[0]
        assert str(request.url) == "https://dlp.googleapis.com/v2/projects/my-project/content:deidentify"
        body = json.loads(request.content)
        assert body["item"] == {"value": "Ján Novák, tel. +421912345678"}
        assert body["inspectConfig"]["minLikelihood"] == "LIKELY"
        assert [t["name"] for t in body["inspectConfig"]["infoTypes"]] == list(DEFAULT_INFO_TYPES)
        transformation = body["deidentifyConfig"]["infoTypeTransformations"]["transformations"][0]
        assert transformation == {"primitiveTransformation": {"replaceWithInfoTypeConfig": {}}}

    def test_missing_value_is_an_error(self):
        engine = DLPEngine(_token, "p", client=_client(_json_handler(200, {"item": {}})))
        with pytest.raises(EngineResponseError):
            engine.deidentify("Ján Novák")

    def test_empty_value_is_returned(self):
        engine = DLPEngine(_token, "p", client=_client(_json_handler(200, {"item": {"value": ""}})))
        assert engine.deidentify("x") == ""


class _StatusError(openai.OpenAIError):
    def __init__(self, status_code):
        super().__init__(f"provider answered {status_code}")
        self.status_code = status_code


def _completion(content="Opravený text", prompt_tokens=10, completion_tokens=5):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


class TestLiteLLMEngine:
    def test_completion_arguments(self):
        engine = LiteLLMEngine("gpt-4o-mini", api_key="sk-test", api_base="https://gw/v1", timeout=30)
        with patch("claim_pipeline.engines.llm.litellm.completion", return_value=_completion()) as completion:
            result = engine.complete("system", "user", response_format={"type": "json_object"})

        assert result == "Opravený text"
        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "user"},
        ]
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["api_base"] == "https://gw/v1"
        assert kwargs["timeout"] == 30
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "temperature" not in kwargs

    def test_records_metrics_for_claim(self):
        engine = LiteLLMEngine("gpt-4o-mini")
        with patch("claim_pipeline.engines.llm.litellm.completion", return_value=_completion()):
            engine.complete("s", "u", claim_id="claim-1", purpose="clean")
        summary = get_metrics().get_claim_summary("claim-1")
        assert summary.total_llm_calls == 1
        assert summary.total_input_tokens == 10
        assert summary.total_output_tokens == 5

    def test_no_metrics_without_claim(self):
        engine = LiteLLMEngine("gpt-4o-mini")
        with patch("claim_pipeline.engines.llm.litellm.completion", return_value=_completion()):
            engine.complete("s", "u")
        assert get_metrics().get_global_stats()["total_llm_calls"] == 0

    @pytest.mark.parametrize(
        "status_code,error_cls",
        [(429, RateLimitError), (402, PaymentRequiredError), (500, EngineError), (None, EngineError)],
    )
    def test_provider_errors(self, status_code, error_cls):
        engine = LiteLLMEngine("gpt-4o-mini")
        with patch(
            "claim_pipeline.engines.llm.litellm.completion", side_effect=_StatusError(status_code)
        ):
            with pytest.raises(error_cls) as exc_info:
                engine.complete("s", "u", claim_id="claim-1")
        assert exc_info.value.status_code == status_code
        assert get_metrics().get_claim_summary("claim-1").failed_calls == 1

    def test_rate_limit_message(self):
        engine = LiteLLMEngine("gpt-4o-mini")
        with patch("claim_pipeline.engines.llm.litellm.completion", side_effect=_StatusError(429)):
            with pytest.raises(RateLimitError, match="Rate limit exceeded. Please try again later."):
                engine.complete("s", "u")

    @pytest.mark.parametrize(
        "response",
        [
            SimpleNamespace(choices=[]),
            SimpleNamespace(choices=[SimpleNamespace(message=None)]),
            _completion(content=None),
            _completion(content="   "),
        ],
    )
    def test_empty_responses(self, response):
        engine = LiteLLMEngine("gpt-4o-mini")
        with patch("claim_pipeline.engines.llm.litellm.completion", return_value=response):
            with pytest.raises(EngineResponseError):
                engine.complete("s", "u")


class TestServiceAccountTokenProvider:
    def test_missing_credentials(self):
        with pytest.raises(EngineAuthError, match="not configured"):
            ServiceAccountTokenProvider("")()

    def test_invalid_json(self):
        with pytest.raises(EngineAuthError, match="not valid JSON"):
            ServiceAccountTokenProvider("{nope")()

    def test_incomplete_service_account(self):
        with pytest.raises(EngineAuthError, match="Invalid service account"):
            ServiceAccountTokenProvider(json.dumps({"type": "service_account"}))()

    def test_project_id(self):
        assert ServiceAccountTokenProvider('{"project_id": "proj-1"}').project_id == "proj-1"
        assert ServiceAccountTokenProvider("").project_id is None
        assert ServiceAccountTokenProvider("[]").project_id is None


class TestEngineFactories:
    def test_ocr_engine_requires_processor(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_CREDENTIALS", '{"project_id": "proj-1"}')
        monkeypatch.delenv("DOCUMENT_AI_CREDENTIALS", raising=False)
        monkeypatch.delenv("DOCUMENT_AI_PROCESSOR_ID", raising=False)
        monkeypatch.delenv("DOCUMENT_AI_PROJECT_ID", raising=False)
        with pytest.raises(ValueError, match="DOCUMENT_AI_PROCESSOR_ID"):
            build_ocr_engine()

    def test_ocr_engine_project_from_credentials(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_CREDENTIALS", '{"project_id": "proj-1"}')
        monkeypatch.delenv("DOCUMENT_AI_CREDENTIALS", raising=False)
        monkeypatch.delenv("DOCUMENT_AI_PROJECT_ID", raising=False)
        monkeypatch.setenv("DOCUMENT_AI_PROCESSOR_ID", "proc-9")
        monkeypatch.setenv("DOCUMENT_AI_LOCATION", "us")
        engine = build_ocr_engine()
        assert engine.endpoint.endswith("/projects/proj-1/locations/us/processors/proc-9:process")
        assert engine.endpoint.startswith("https://us-documentai.googleapis.com/")

    def test_deidentification_engine_requires_project(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_CREDENTIALS", '{"type": "service_account"}')
        with pytest.raises(ValueError, match="project_id"):
            build_deidentification_engine()

    def test_deidentification_engine(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_CREDENTIALS", '{"project_id": "proj-1"}')
        monkeypatch.setenv("DLP_MIN_LIKELIHOOD", "LIKELY")
        engine = build_deidentification_engine()
        assert engine.project_id == "proj-1"
        assert engine.min_likelihood == "LIKELY"
