"""utterflow: turn streaming multi-speaker STT fragments into complete utterances."""
from utterflow.conversation.processor import (
    ConversationEvent,
    ConversationProcessor,
    ConversationResponse,
)
from utterflow.fragments.aggregator import FragmentAggregator
from utterflow.fragments.models import CompleteUtterance, PendingFragment
from utterflow.transcript.coalescer import TranscriptCoalescer, TranscriptEntry

__all__ = [
    "CompleteUtterance",
    "ConversationEvent",
    "ConversationProcessor",
    "ConversationResponse",
    "FragmentAggregator",
    "PendingFragment",
    "TranscriptCoalescer",
    "TranscriptEntry",
]
