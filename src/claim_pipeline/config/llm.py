"""LLM configuration for OpenRouter, an OpenAI-compatible gateway, or the default provider.

The pipeline talks to the model through LiteLLM, so any provider LiteLLM
understands can be selected with OPENAI_MODEL_NAME (e.g. ``gpt-4o-mini`` or
``openrouter/google/gemini-2.5-flash``).
"""

import os
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def get_model_name() -> str:
    """Get the configured model name."""
    return os.environ.get("OPENAI_MODEL_NAME", "gpt-4o-mini").strip()


def get_llm():
    """Return the configured LLM engine for cleaning and report generation.

    Returns:
        LiteLLMEngine instance.

    Raises:
        ValueError: If OPENAI_API_KEY is not set.
    """
    from claim_pipeline.engines.llm import LiteLLMEngine

    api_key = os.environ.get("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required")

    base = os.environ.get("OPENAI_API_BASE", "").strip()
    model = get_model_name()

    logger.debug(
        "Configuring LLM: model=%s, base_url=%s",
        model,
        base if base else "default",
    )

    return LiteLLMEngine(model=model, api_key=api_key, api_base=base or None)
