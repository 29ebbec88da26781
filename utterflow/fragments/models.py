"""
Fragment buffering types.

A Fragment is one partial STT emission for one speaker (not cumulative text).
Aggregation returns one of two variants:
- CompleteUtterance: buffer joined into one string; buffer cleared.
- PendingFragment: nothing joined yet; caller should wait. May carry an
  AggregationFault when the wait is the result of an absorbed internal error.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


@dataclass
class Fragment:
    text: str
    timestamp: float  # unix_ms
    is_complete: bool = False


class SpeakerState(str, Enum):
    """Per-speaker buffer state. EMPTY → BUFFERING on append; back to EMPTY when sealed."""

    EMPTY = "empty"
    BUFFERING = "buffering"


@dataclass(frozen=True)
class AggregationFault:
    """Internal error absorbed by the aggregator; the caller only sees a degraded wait."""

    operation: str
    speaker_id: str
    error: str


@dataclass(frozen=True)
class CompleteUtterance:
    text: str
    should_respond: bool

    kind = "complete"


@dataclass(frozen=True)
class PendingFragment:
    should_wait: bool = True
    fault: AggregationFault | None = None

    kind = "fragment"

    @property
    def degraded(self) -> bool:
        return self.fault is not None


AggregationResult = Union[CompleteUtterance, PendingFragment]


@dataclass
class AggregatorStats:
    """Introspection snapshot for dashboards / health checks."""

    active_speakers: int = 0
    total_fragments: int = 0
    speaker_fragment_counts: dict[str, int] = field(default_factory=dict)
    oldest_fragment_age_ms: float | None = None

    def to_dict(self) -> dict:
        return {
            "active_speakers": self.active_speakers,
            "total_fragments": self.total_fragments,
            "speaker_fragment_counts": dict(self.speaker_fragment_counts),
            "oldest_fragment_age_ms": self.oldest_fragment_age_ms,
        }
