"""De-identification engines: replace PII spans with typed placeholder tokens."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Sequence

import httpx

from claim_pipeline.config.settings import HTTP_TIMEOUT_SECONDS
from claim_pipeline.engines.errors import EngineResponseError
from claim_pipeline.engines.http import post_json

logger = logging.getLogger(__name__)

# Entity types detected in medical documents
DEFAULT_INFO_TYPES = (
    "PERSON_NAME",
    "EMAIL_ADDRESS",
    "PHONE_NUMBER",
    "CREDIT_CARD_NUMBER",
    "IBAN_CODE",
    "STREET_ADDRESS",
    "DATE_OF_BIRTH",
    "PASSPORT",
    "NATIONAL_ID",
)


class DeidentificationEngine(ABC):
    @abstractmethod
    def deidentify(self, text: str, info_types: Sequence[str] = DEFAULT_INFO_TYPES) -> str:
        """Return text with every detected span replaced by ``[INFO_TYPE]``."""


class DLPEngine(DeidentificationEngine):
    """Google Cloud DLP ``content:deidentify`` client (replace-with-info-type)."""

    def __init__(
        self,
        token_provider: Callable[[], str],
        project_id: str,
        min_likelihood: str = "POSSIBLE",
        client: httpx.Client | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self._token_provider = token_provider
        self.project_id = project_id
        self.min_likelihood = min_likelihood
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"https://dlp.googleapis.com/v2/projects/{self.project_id}/content:deidentify"

    def build_request(self, text: str, info_types: Sequence[str]) -> dict:
        return {
            "item": {"value": text},
            "deidentifyConfig": {
                "infoTypeTransformations": {
                    "transformations": [
                        {"primitiveTransformation": {"replaceWithInfoTypeConfig": {}}}
                    ]
                }
            },
            "inspectConfig": {
                "infoTypes": [{"name": name} for name in info_types],
                "minLikelihood": self.min_likelihood,
            },
        }

    def deidentify(self, text: str, info_types: Sequence[str] = DEFAULT_INFO_TYPES) -> str:
        result = post_json(
            self._client, self.endpoint, self.build_request(text, info_types), self._token_provider, "DLP"
        )
        item = result.get("item")
        value = item.get("value") if isinstance(item, dict) else None
        # A missing value must not fall back to the input: it still holds the PII
        if not isinstance(value, str):
            raise EngineResponseError("DLP response has no de-identified value")
        logger.info("De-identification finished: %d chars in, %d chars out", len(text), len(value))
        return value
