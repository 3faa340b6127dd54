from __future__ import annotations

import hashlib
import re
from typing import Any, Dict

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
# Phone-like numbers: optional country code, separators, at least 9 digits overall.
PHONE_RE = re.compile(r"\+?\d[\d\s().-]{8,}\d")
GOV_ID_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
# Google API keys travel in the generation URL's query string.
API_KEY_RE = re.compile(r"AIza[0-9A-Za-z_\-]{35}")
KEY_PARAM_RE = re.compile(r"([?&]key=)[^&\s\"']+")

# Keys whose values are conversation text or credentials; never logged verbatim.
SENSITIVE_FIELDS = {
    "messages",
    "transcript",
    "history",
    "system_instruction",
    "grounding_context",
    "user_turn",
    "reply",
    "text",
    "credential",
    "api_key",
    "access_token",
    "custom_token",
}


def _hash_token(text: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"[HASH:{digest}]"


def scrub_text(text: str) -> str:
    """Redact or hash obvious PII and credentials in free text."""
    if not text:
        return text

    def _replace(match: re.Match, label: str) -> str:
        return f"[{label}_{_hash_token(match.group(0))}]"

    scrubbed = KEY_PARAM_RE.sub(lambda m: f"{m.group(1)}[REDACTED]", text)
    scrubbed = API_KEY_RE.sub("[API_KEY]", scrubbed)
    scrubbed = EMAIL_RE.sub(lambda m: _replace(m, "EMAIL"), scrubbed)
    scrubbed = PHONE_RE.sub(lambda m: _replace(m, "PHONE"), scrubbed)
    scrubbed = GOV_ID_RE.sub(lambda m: _replace(m, "ID"), scrubbed)
    return scrubbed


def _summarize(value: Any) -> Dict[str, Any]:
    if isinstance(value, str):
        return {"redacted": True, "chars": len(value)}
    length = len(value) if hasattr(value, "__len__") else None
    return {"redacted": True, "items": length}


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    if lowered in SENSITIVE_FIELDS:
        return True
    return "token" in lowered or "secret" in lowered or "password" in lowered


def scrub_value(value: Any) -> Any:
    """Scrub a generic value for PII before logging."""
    if isinstance(value, str):
        cleaned = scrub_text(value)
        if len(cleaned) > 500:
            return _hash_token(cleaned)
        return cleaned
    if isinstance(value, dict):
        return sanitize_log_payload(value)
    if isinstance(value, list):
        # Lists of chat messages are summarised, not logged.
        if any(isinstance(item, dict) and "text" in item for item in value):
            return _summarize(value)
        return [scrub_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(scrub_value(item) for item in value)
    return value


def sanitize_log_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Strip or hash PII-heavy fields from a log payload."""
    if not isinstance(payload, dict):
        return {}

    cleaned: Dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            cleaned[key] = value
        elif _is_sensitive_key(str(key)):
            cleaned[key] = _summarize(value)
        else:
            cleaned[key] = scrub_value(value)
    return cleaned
