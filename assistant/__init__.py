"""
Assistant package: grounding context, the generation endpoint adapter and the
per-listing conversation session.
"""

from .gemini_client import FALLBACK_REPLY, GeminiClient
from .grounding import build_grounding_context
from .session import ConversationMessage, ConversationSession, Role, SessionState

__all__ = [
    "FALLBACK_REPLY",
    "GeminiClient",
    "build_grounding_context",
    "ConversationMessage",
    "ConversationSession",
    "Role",
    "SessionState",
]
