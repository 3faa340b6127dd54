"""Per-listing conversation session around the generation endpoint."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Tuple

from assistant.grounding import build_grounding_context, greeting_for
from listings.models import Listing
from runtime.errors import GenerationConfigurationError, GenerationUpstreamError
from telemetry.logging_utils import get_logger
from telemetry.prompt_filters import detect_prompt_injection

logger = get_logger(__name__)

CONNECTION_FAILURE_REPLY = "I'm having trouble connecting to the server. Please try again."
NOT_CONFIGURED_REPLY = "The assistant isn't set up yet, so I can't answer questions about this item."


def upstream_failure_reply(message: str) -> str:
    return f"Sorry, I couldn't get an answer right now ({message}). Please try again."


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    text: str

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("Conversation messages must not be empty.")


class TextGenerator(Protocol):
    async def generate(
        self, system_instruction: str, user_turn: str, *, conversation_id: Optional[str] = None
    ) -> str: ...


class ConversationSession:
    """Owns one listing's message log plus the single in-flight request.

    The log is append-only and starts with an assistant greeting. Each turn
    is grounded on its own: the endpoint sees the listing's instruction block
    and the new user text, never the history.
    """

    def __init__(self, listing: Listing, generator: TextGenerator, *, session_id: Optional[str] = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.listing = listing
        self._generator = generator
        self._system_instruction = build_grounding_context(listing)
        self._messages: List[ConversationMessage] = [ConversationMessage(Role.ASSISTANT, greeting_for(listing))]
        self.state = SessionState.IDLE
        self.closed = False
        self.flagged_turns = 0

    @property
    def messages(self) -> Tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    @property
    def system_instruction(self) -> str:
        return self._system_instruction

    @property
    def busy(self) -> bool:
        return self.state is SessionState.AWAITING_RESPONSE

    async def submit(self, text: str) -> Optional[ConversationMessage]:
        """Send one user turn. Returns the appended assistant message, or None
        when the turn was rejected or the session closed while waiting."""
        if self.closed:
            logger.info("session_submit_rejected", extra={"session_id": self.session_id, "reason": "closed"})
            return None
        if self.state is not SessionState.IDLE:
            logger.info("session_submit_rejected", extra={"session_id": self.session_id, "reason": "busy"})
            return None
        if not text or not text.strip():
            logger.info("session_submit_rejected", extra={"session_id": self.session_id, "reason": "empty"})
            return None

        injection_reason = detect_prompt_injection(text)
        if injection_reason:
            self.flagged_turns += 1
            logger.warning(
                "prompt_injection_suspected",
                extra={"session_id": self.session_id, "pattern": injection_reason},
            )

        self._messages.append(ConversationMessage(Role.USER, text))
        self.state = SessionState.AWAITING_RESPONSE
        logger.info(
            "session_message_start",
            extra={"session_id": self.session_id, "listing_id": self.listing.id},
        )
        try:
            reply = await self._generator.generate(
                self._system_instruction, text, conversation_id=self.session_id
            )
            failed = False
        except GenerationUpstreamError as exc:
            logger.warning("session_upstream_error", extra={"session_id": self.session_id, "error": exc.message})
            reply, failed = upstream_failure_reply(exc.message), True
        except GenerationConfigurationError as exc:
            logger.error("session_not_configured", extra={"session_id": self.session_id, "error": str(exc)})
            reply, failed = NOT_CONFIGURED_REPLY, True
        except Exception:
            logger.exception("session_generation_failed", extra={"session_id": self.session_id})
            reply, failed = CONNECTION_FAILURE_REPLY, True
        finally:
            if not self.closed:
                self.state = SessionState.IDLE

        if self.closed:
            logger.info("session_response_discarded", extra={"session_id": self.session_id})
            return None

        message = ConversationMessage(Role.ASSISTANT, reply or CONNECTION_FAILURE_REPLY)
        self._messages.append(message)
        logger.info(
            "session_message_complete",
            extra={
                "session_id": self.session_id,
                "listing_id": self.listing.id,
                "reply_length": len(message.text),
                "failed": failed,
            },
        )
        return message

    def close(self) -> None:
        """Tear the session down; the log is discarded and late replies are dropped."""
        if self.closed:
            return
        self.closed = True
        self._messages = []
        self.state = SessionState.IDLE
        logger.info("session_closed", extra={"session_id": self.session_id, "listing_id": self.listing.id})
