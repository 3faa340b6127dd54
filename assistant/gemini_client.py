from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from runtime.errors import (
    GenerationConfigurationError,
    GenerationConnectivityError,
    GenerationUpstreamError,
    MalformedResponseError,
    ValidationError,
)
from telemetry.logging_utils import get_logger
from telemetry.metrics import extract_usage_tokens, start_timer

logger = get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash-001"
FALLBACK_REPLY = "I'm sorry, I couldn't process that request right now."
MIN_CREDENTIAL_LENGTH = 20


def build_request_body(system_instruction: str, user_turn: str) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": user_turn}]}],
        "systemInstruction": {"parts": [{"text": system_instruction}]},
    }


def extract_candidate_text(payload: Any) -> Optional[str]:
    """First candidate's first text part, or None when the shape is unexpected."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text:
        return None
    return text


def extract_error_message(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict) or not payload.get("error"):
        return None
    error = payload["error"]
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or "Unknown upstream error")
    return str(error)


class GeminiClient:
    """Single-request adapter for the generateContent endpoint.

    One call, one request: no retries, no history. In trusted-execution mode
    (sandbox) an empty credential is legitimate because the endpoint is
    authorised implicitly.
    """

    def __init__(
        self,
        credential: str,
        *,
        model: str = DEFAULT_MODEL,
        trusted_execution: bool = False,
        timeout: float = 30.0,
        base_url: str = GEMINI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.credential = credential or ""
        self.model = model
        self.trusted_execution = trusted_execution
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def check_credential(self) -> None:
        if self.trusted_execution:
            return
        if len(self.credential.strip()) < MIN_CREDENTIAL_LENGTH:
            raise GenerationConfigurationError("Generation API key is missing or too short.")

    async def generate(
        self,
        system_instruction: str,
        user_turn: str,
        *,
        conversation_id: Optional[str] = None,
    ) -> str:
        if not user_turn or not user_turn.strip():
            raise ValidationError("User turn must not be empty.")
        self.check_credential()

        timer = start_timer("generation", self.model, conversation_id)
        outcome = "error"
        tokens_in: Optional[int] = None
        tokens_out: Optional[int] = None
        try:
            try:
                response = await self._client.post(
                    self.endpoint_url,
                    params={"key": self.credential} if self.credential else None,
                    json=build_request_body(system_instruction, user_turn),
                    headers={"Content-Type": "application/json"},
                )
            except httpx.HTTPError as exc:
                raise GenerationConnectivityError(f"Generation request failed: {exc}") from exc

            try:
                payload = response.json()
            except ValueError as exc:
                if response.is_error:
                    raise GenerationUpstreamError(f"HTTP {response.status_code}") from exc
                raise MalformedResponseError("Generation response was not JSON.") from exc

            upstream_message = extract_error_message(payload)
            if upstream_message is not None:
                raise GenerationUpstreamError(upstream_message)
            if response.is_error:
                raise GenerationUpstreamError(f"HTTP {response.status_code}")

            tokens_in, tokens_out = extract_usage_tokens(payload)
            text = extract_candidate_text(payload)
            if text is None:
                logger.warning(
                    "generation_unexpected_shape",
                    extra={"model": self.model, "conversation_id": conversation_id},
                )
                outcome = "fallback"
                return FALLBACK_REPLY
            outcome = "ok"
            return text
        finally:
            timer.done(tokens_in=tokens_in, tokens_out=tokens_out, outcome=outcome)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
