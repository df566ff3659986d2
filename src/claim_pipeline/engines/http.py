"""JSON-over-HTTP helper shared by the Google engine clients."""

import logging
from typing import Any, Callable

import httpx

from claim_pipeline.engines.errors import (
    EngineAuthError,
    EngineError,
    EngineResponseError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


def post_json(
    client: httpx.Client,
    url: str,
    payload: dict[str, Any],
    token_provider: Callable[[], str],
    engine: str,
) -> dict[str, Any]:
    """POST payload with a bearer token and return the decoded JSON object.

    No retries: a failed call surfaces immediately as an EngineError subclass.

    Raises:
        EngineAuthError: Token could not be obtained, or the API answered 401/403.
        RateLimitError: The API answered 429.
        EngineError: Any other HTTP or transport failure.
        EngineResponseError: The body is not a JSON object.
    """
    token = token_provider()
    try:
        response = client.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        body = e.response.text[:500]
        logger.warning(
            "%s HTTP error %s",
            engine,
            status_code,
            extra={"extra_data": {"url": url, "status_code": status_code, "error_body": body}},
        )
        if status_code in (401, 403):
            raise EngineAuthError(f"{engine} rejected credentials ({status_code})", status_code) from e
        if status_code == 429:
            raise RateLimitError() from e
        raise EngineError(f"{engine} processing failed ({status_code}): {body}", status_code) from e
    except httpx.TimeoutException as e:
        raise EngineError(f"{engine} request timed out") from e
    except httpx.HTTPError as e:
        raise EngineError(f"{engine} request failed: {e}") from e

    try:
        data = response.json()
    except ValueError as e:
        raise EngineResponseError(f"{engine} returned a non-JSON body") from e
    if not isinstance(data, dict):
        raise EngineResponseError(f"{engine} returned unexpected JSON ({type(data).__name__})")
    return data
