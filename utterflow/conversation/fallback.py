"""
Secondary fragment processor consulted when the aggregator declines to complete.

It only sees fragments the aggregator answered with PendingFragment (same raw
text, speaker and timestamp), never fragments already folded into a complete
utterance. Default is NullFallbackProcessor (never completes).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from utterflow.fragments.models import CompleteUtterance


@dataclass
class FallbackContext:
    speaker_changed: bool = False
    silence_duration_ms: float | None = None
    previous_utterances: list[str] = field(default_factory=list)


class FallbackFragmentProcessor(ABC):
    """May return a completed utterance for a fragment the aggregator is still buffering."""

    @abstractmethod
    def process(
        self,
        text: str,
        speaker_id: str,
        timestamp: float,
        context: FallbackContext,
    ) -> CompleteUtterance | None:
        ...


class NullFallbackProcessor(FallbackFragmentProcessor):
    def process(
        self,
        text: str,
        speaker_id: str,
        timestamp: float,
        context: FallbackContext,
    ) -> CompleteUtterance | None:
        return None
