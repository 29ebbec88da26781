"""
TranscriptCoalescer: merge streaming revisions of the same final line.

STT providers often emit a final result and then a refined/extended one for
the same speech ("what is" → "what is today's date"), or a restatement
("is today's date?" → "what is today's date?"). Instead of appending both,
the new entry is merged into the previous one when:
- same speaker,
- |Δt| <= COALESCE_WINDOW_MS,
- one text is a case-insensitive prefix of the other, OR token-set Jaccard
  similarity >= COALESCE_JACCARD_THRESHOLD.
Merge keeps the longer text (ties → new), the max confidence, the new timestamp.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field

from utterflow.config import get_settings

logger = logging.getLogger(__name__)

_NON_TOKEN_RE = re.compile(r"[^a-z0-9\s']", re.IGNORECASE)


def _entry_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class TranscriptEntry:
    """One finalized transcript line (display / storage unit). Mutated in place when coalesced."""

    speaker_id: str
    text: str
    timestamp: float  # unix_ms
    confidence: float = 0.0  # 0.0–1.0
    is_final: bool = True
    entry_id: str = field(default_factory=_entry_id)

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "speaker_id": self.speaker_id,
            "text": self.text,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
            "is_final": self.is_final,
        }


def tokenize(text: str) -> set[str]:
    """Lowercase word set; punctuation except apostrophes removed."""
    return set(_NON_TOKEN_RE.sub(" ", text or "").lower().split())


def jaccard_similarity(a: str, b: str) -> float:
    set_a = tokenize(a)
    set_b = tokenize(b)
    union = len(set_a | set_b) or 1
    return len(set_a & set_b) / union


def is_same_or_extension(a: str, b: str) -> bool:
    a = (a or "").strip().lower()
    b = (b or "").strip().lower()
    if not a or not b:
        return False
    return a == b or a.startswith(b) or b.startswith(a)


class TranscriptCoalescer:
    def __init__(self, window_ms: float | None = None, threshold: float | None = None) -> None:
        settings = get_settings()
        self._window_ms = window_ms if window_ms is not None else settings.COALESCE_WINDOW_MS
        self._threshold = threshold if threshold is not None else settings.COALESCE_JACCARD_THRESHOLD

    def should_coalesce(self, previous: TranscriptEntry | None, new: TranscriptEntry) -> bool:
        """True when new is a refinement/restatement of previous (same speaker, close in time, similar text)."""
        if previous is None or new is None:
            return False
        try:
            if previous.speaker_id != new.speaker_id:
                return False
            if abs(new.timestamp - previous.timestamp) > self._window_ms:
                return False
            if is_same_or_extension(new.text, previous.text):
                return True
            return jaccard_similarity(new.text, previous.text) >= self._threshold
        except (TypeError, AttributeError) as e:
            logger.warning("Coalesce check failed, appending instead: %s", e)
            return False

    def merge_into(self, previous: TranscriptEntry, new: TranscriptEntry) -> TranscriptEntry:
        """Update previous in place from new; returns previous."""
        new_text = (new.text or "").strip()
        previous_text = (previous.text or "").strip()
        if len(new_text) >= len(previous_text):
            previous.text = new.text
        previous.confidence = max(previous.confidence or 0.0, new.confidence or 0.0)
        previous.timestamp = new.timestamp
        return previous
