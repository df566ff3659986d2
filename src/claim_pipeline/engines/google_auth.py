"""Access tokens for Google Cloud APIs from service-account JSON credentials."""

import json
import logging
import threading

import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from claim_pipeline.engines.errors import EngineAuthError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class ServiceAccountTokenProvider:
    """Callable returning a valid OAuth2 access token.

    Credentials are parsed lazily on first use and the token is refreshed
    only when it has expired.
    """

    def __init__(self, credentials_json: str, scopes: list[str] | None = None):
        self._credentials_json = credentials_json
        self._scopes = scopes or [CLOUD_PLATFORM_SCOPE]
        self._credentials = None
        self._lock = threading.Lock()

    def _load(self):
        if not self._credentials_json or not self._credentials_json.strip():
            raise EngineAuthError("Google Cloud credentials not configured")
        try:
            info = json.loads(self._credentials_json)
        except json.JSONDecodeError as e:
            raise EngineAuthError(f"Google Cloud credentials are not valid JSON: {e}") from e
        try:
            return service_account.Credentials.from_service_account_info(info, scopes=self._scopes)
        except (ValueError, KeyError) as e:
            raise EngineAuthError(f"Invalid service account credentials: {e}") from e

    @property
    def project_id(self) -> str | None:
        """project_id from the credentials JSON, if present."""
        try:
            return json.loads(self._credentials_json).get("project_id")
        except (json.JSONDecodeError, AttributeError):
            return None

    def __call__(self) -> str:
        with self._lock:
            if self._credentials is None:
                self._credentials = self._load()
            if not self._credentials.valid:
                try:
                    self._credentials.refresh(google.auth.transport.requests.Request())
                except google.auth.exceptions.GoogleAuthError as e:
                    raise EngineAuthError(f"Failed to get Google access token: {e}") from e
                logger.debug("Refreshed Google access token")
            return self._credentials.token
