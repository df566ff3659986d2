"""LLM completion engines used for text cleaning and report generation."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import litellm
import openai

from claim_pipeline.config.settings import HTTP_TIMEOUT_SECONDS
from claim_pipeline.engines.errors import (
    EngineError,
    EngineResponseError,
    PaymentRequiredError,
    RateLimitError,
)
from claim_pipeline.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class LLMEngine(ABC):
    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        response_format: dict[str, Any] | None = None,
        claim_id: str | None = None,
        purpose: str | None = None,
    ) -> str:
        """Return the assistant message content for a system + user prompt.

        Raises:
            RateLimitError: Provider answered 429.
            PaymentRequiredError: Provider answered 402.
            EngineResponseError: No usable message content.
            EngineError: Any other provider failure.
        """


def _message_content(response: Any) -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        raise EngineResponseError("Invalid response from AI service: no choices")
    message = getattr(choices[0], "message", None)
    if message is None:
        raise EngineResponseError("Invalid response from AI service: no message")
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise EngineResponseError("AI service returned empty text")
    return content


def _usage(response: Any) -> tuple[int, int]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0, 0
    return int(getattr(usage, "prompt_tokens", 0) or 0), int(getattr(usage, "completion_tokens", 0) or 0)


class LiteLLMEngine(LLMEngine):
    """Chat completion through LiteLLM (OpenAI, OpenRouter or any compatible gateway)."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        temperature: float | None = None,
    ):
        self.model = model
        self._api_key = api_key
        self._api_base = api_base
        self._timeout = timeout
        self._temperature = temperature

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        response_format: dict[str, Any] | None = None,
        claim_id: str | None = None,
        purpose: str | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "timeout": self._timeout,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        if response_format is not None:
            kwargs["response_format"] = response_format
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature

        start = time.time()
        try:
            response = litellm.completion(**kwargs)
        except openai.OpenAIError as e:
            latency_ms = (time.time() - start) * 1000
            status_code = getattr(e, "status_code", None)
            self._record(claim_id, 0, 0, latency_ms, "error", str(e), purpose)
            logger.warning("LLM call failed: model=%s, status=%s", self.model, status_code)
            if status_code == 429:
                raise RateLimitError() from e
            if status_code == 402:
                raise PaymentRequiredError() from e
            raise EngineError(f"AI API error: {status_code} - {e}", status_code) from e

        latency_ms = (time.time() - start) * 1000
        input_tokens, output_tokens = _usage(response)
        try:
            content = _message_content(response)
        except EngineResponseError as e:
            self._record(claim_id, input_tokens, output_tokens, latency_ms, "error", str(e), purpose)
            raise
        self._record(claim_id, input_tokens, output_tokens, latency_ms, "success", None, purpose)
        logger.debug(
            "LLM call finished: model=%s, purpose=%s, %d chars out, %.0fms",
            self.model,
            purpose,
            len(content),
            latency_ms,
        )
        return content

    def _record(
        self,
        claim_id: str | None,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        status: str,
        error: str | None,
        purpose: str | None,
    ) -> None:
        if not claim_id:
            return
        get_metrics().record_llm_call(
            claim_id=claim_id,
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=latency_ms,
            status=status,
            error=error,
            purpose=purpose,
        )
