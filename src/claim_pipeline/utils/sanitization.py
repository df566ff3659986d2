"""Input sanitization for prompt fields to limit prompt injection and abuse."""

import re

from claim_pipeline.config.settings import MAX_CUSTOM_INSTRUCTION_CHARS

# Maximum lengths for claim metadata fields (characters)
MAX_CLAIM_NUMBER = 64
MAX_CLIENT_NAME = 200
MAX_POLICY_NUMBER = 64
MAX_CLAIM_TYPE = 64

_CLAIM_FIELD_LIMITS = {
    "claim_number": MAX_CLAIM_NUMBER,
    "client_name": MAX_CLIENT_NAME,
    "policy_number": MAX_POLICY_NUMBER,
    "claim_type": MAX_CLAIM_TYPE,
}

# Patterns that may indicate prompt injection attempts (English and Slovak)
INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(?:all\s+)?(?:previous|above|prior)\s+instructions?", re.I),
    re.compile(r"disregard\s+(?:all\s+)?(?:previous|above|prior)", re.I),
    re.compile(r"you\s+are\s+now\s+", re.I),
    re.compile(r"new\s+instructions?\s*:", re.I),
    re.compile(r"system\s*:\s*", re.I),
    re.compile(r"ignoruj\s+(?:všetky\s+)?(?:predchádzajúce|predošlé)\s+(?:inštrukcie|pokyny)", re.I),
    re.compile(r"<\|[a-z_]+\|>", re.I),  # special tokens
]


def _sanitize_text(text: str | None, max_length: int) -> str:
    """Strip control characters and truncate to max_length."""
    if text is None or not isinstance(text, str):
        return ""
    # Keep tab/newline/carriage return
    cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    cleaned = cleaned.strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def _remove_injection_patterns(text: str) -> str:
    if not text:
        return text
    result = text
    for pattern in INJECTION_PATTERNS:
        result = pattern.sub("[redacted]", result)
    return result


def sanitize_claim_info(claim_info: dict[str, str] | None) -> dict[str, str]:
    """Sanitize claim metadata before it is placed in a report prompt.

    Returns a new dict with only the known prompt fields; does not mutate the input.
    """
    if not claim_info:
        return {}
    return {
        key: _sanitize_text(claim_info.get(key), limit)
        for key, limit in _CLAIM_FIELD_LIMITS.items()
    }


def sanitize_custom_instruction(text: str | None) -> str | None:
    """Sanitize the free-text instruction for claim reports. Blank input gives None."""
    cleaned = _sanitize_text(text, MAX_CUSTOM_INSTRUCTION_CHARS)
    if not cleaned:
        return None
    return _remove_injection_patterns(cleaned)
