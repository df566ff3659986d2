"""OCR engines: turn document bytes into plain text."""

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

import httpx

from claim_pipeline.config.settings import HTTP_TIMEOUT_SECONDS
from claim_pipeline.engines.errors import EngineResponseError
from claim_pipeline.engines.http import post_json

logger = logging.getLogger(__name__)


class OCREngine(ABC):
    @abstractmethod
    def extract_text(self, data: bytes, mime_type: str) -> str:
        """Return the plain text found in the document."""


class DocumentAIEngine(OCREngine):
    """Google Document AI processor client.

    Sends the raw document base64-encoded to the processor's ``:process``
    endpoint and returns ``document.text`` (empty string when the processor
    found no text).
    """

    def __init__(
        self,
        token_provider: Callable[[], str],
        project_id: str,
        processor_id: str,
        location: str = "eu",
        client: httpx.Client | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self._token_provider = token_provider
        self.project_id = project_id
        self.processor_id = processor_id
        self.location = location
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.location}-documentai.googleapis.com/v1/projects/{self.project_id}"
            f"/locations/{self.location}/processors/{self.processor_id}:process"
        )

    def extract_text(self, data: bytes, mime_type: str) -> str:
        start = time.time()
        payload = {
            "rawDocument": {
                "content": base64.b64encode(data).decode("ascii"),
                "mimeType": mime_type,
            }
        }
        result = post_json(self._client, self.endpoint, payload, self._token_provider, "Document AI")
        document = result.get("document")
        if document is None:
            return ""
        if not isinstance(document, dict):
            raise EngineResponseError("Document AI response has no document object")
        text = document.get("text") or ""
        logger.info(
            "OCR finished: %d bytes in, %d chars out, %.0fms",
            len(data),
            len(text),
            (time.time() - start) * 1000,
        )
        return text
