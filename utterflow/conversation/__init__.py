"""Conversation event coordination: transcript / speaker_change / silence / interrupt."""
from __future__ import annotations

from utterflow.conversation.context import ContextTracker
from utterflow.conversation.fallback import (
    FallbackContext,
    FallbackFragmentProcessor,
    NullFallbackProcessor,
)
from utterflow.conversation.interrupt import InterruptDetector
from utterflow.conversation.processor import (
    ConversationEvent,
    ConversationProcessor,
    ConversationResponse,
)

__all__ = [
    "ContextTracker",
    "ConversationEvent",
    "ConversationProcessor",
    "ConversationResponse",
    "FallbackContext",
    "FallbackFragmentProcessor",
    "InterruptDetector",
    "NullFallbackProcessor",
]
