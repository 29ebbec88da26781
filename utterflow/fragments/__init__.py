"""Per-speaker fragment aggregation: buffer partial STT text until an utterance is complete."""
from __future__ import annotations

from utterflow.fragments.aggregator import FragmentAggregator
from utterflow.fragments.heuristics import (
    HeuristicClassifier,
    TextClassifier,
    contains_question,
    is_complete,
    join_fragments,
)
from utterflow.fragments.models import (
    AggregationFault,
    AggregationResult,
    AggregatorStats,
    CompleteUtterance,
    Fragment,
    PendingFragment,
    SpeakerState,
)

__all__ = [
    "AggregationFault",
    "AggregationResult",
    "AggregatorStats",
    "CompleteUtterance",
    "Fragment",
    "FragmentAggregator",
    "HeuristicClassifier",
    "PendingFragment",
    "SpeakerState",
    "TextClassifier",
    "contains_question",
    "is_complete",
    "join_fragments",
]
