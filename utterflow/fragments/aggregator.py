"""
FragmentAggregator: per-speaker buffering of partial STT fragments.

Each speaker has one ordered buffer (arrival order = word order). On every
aggregate() call:
1. Purge fragments older than FRAGMENT_MAX_AGE_MS from every speaker.
2. Boundary: if the speaker's buffer ended in a pause (gap > AGGREGATE_PAUSE_MS
   before the new fragment) or already ends in a complete fragment, seal it
   and return it; the new fragment starts a fresh buffer. When the new
   fragment fires a trigger on its own, both texts come back joined in the
   same utterance, so a complete fragment is never left behind the seal.
3. Cap: at FRAGMENT_MAX_PER_SPEAKER, drop the oldest half (lossy, logged).
4. Append; then aggregate when the last fragment is complete, the buffer is
   longer than AGGREGATE_MAX_CHARS, or the last fragment is older than
   AGGREGATE_PAUSE_MS by the clock.

No public method raises: faults are logged and degrade to PendingFragment
(with the fault attached), None, or an empty value.
"""
from __future__ import annotations

import logging
import math
import time
from typing import Callable

from utterflow.config import get_settings
from utterflow.fragments.heuristics import HeuristicClassifier, TextClassifier, join_fragments
from utterflow.fragments.models import (
    AggregationFault,
    AggregationResult,
    AggregatorStats,
    CompleteUtterance,
    Fragment,
    PendingFragment,
    SpeakerState,
)

logger = logging.getLogger(__name__)


def _unix_ms() -> float:
    return time.time() * 1000.0


class FragmentAggregator:
    """
    Owns every per-speaker fragment buffer. One instance per meeting; nothing
    else reads or mutates the buffers except through these methods.
    Not thread-safe: callers serialize access (one event at a time).
    """

    def __init__(
        self,
        max_age_ms: float | None = None,
        max_fragments: int | None = None,
        max_chars: int | None = None,
        pause_ms: float | None = None,
        unknown_speaker: str | None = None,
        classifier: TextClassifier | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        settings = get_settings()
        self._max_age_ms = max_age_ms if max_age_ms is not None else settings.FRAGMENT_MAX_AGE_MS
        self._max_fragments = max_fragments if max_fragments is not None else settings.FRAGMENT_MAX_PER_SPEAKER
        self._max_chars = max_chars if max_chars is not None else settings.AGGREGATE_MAX_CHARS
        self._pause_ms = pause_ms if pause_ms is not None else settings.AGGREGATE_PAUSE_MS
        self._unknown_speaker = unknown_speaker or settings.UNKNOWN_SPEAKER_ID
        self._classifier = classifier or HeuristicClassifier()
        self._clock = clock or _unix_ms
        self._fragments: dict[str, list[Fragment]] = {}

    @property
    def classifier(self) -> TextClassifier:
        return self._classifier

    # --- input normalization ---

    def normalize_speaker(self, speaker_id: object) -> str:
        """Non-blank string (or int) id; anything else maps to the unknown-speaker id."""
        if isinstance(speaker_id, bool):
            return self._unknown_speaker
        if isinstance(speaker_id, int):
            return str(speaker_id)
        if isinstance(speaker_id, str) and speaker_id.strip():
            return speaker_id.strip()
        return self._unknown_speaker

    def normalize_timestamp(self, timestamp: object) -> float:
        """Positive finite number, else now (ms)."""
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return self._clock()
        if not math.isfinite(timestamp) or timestamp <= 0:
            return self._clock()
        return float(timestamp)

    # --- aggregation ---

    def aggregate(
        self,
        fragment_text: object,
        speaker_id: object = None,
        timestamp: object = None,
    ) -> AggregationResult:
        """Buffer one fragment for a speaker; return a complete utterance when a trigger fires."""
        speaker = self._unknown_speaker
        try:
            speaker = self.normalize_speaker(speaker_id)
            if not isinstance(fragment_text, str) or not fragment_text.strip():
                return PendingFragment(should_wait=True)
            ts = self.normalize_timestamp(timestamp)

            self.clean_old_fragments(ts)
            buffer = self._fragments.get(speaker) or []

            sealed: CompleteUtterance | None = None
            if buffer and self._at_boundary(buffer, ts):
                sealed = self._seal(speaker, buffer)
                buffer = []

            if len(buffer) >= self._max_fragments:
                drop = max(1, self._max_fragments // 2)
                logger.warning(
                    "Fragment buffer for speaker %s hit cap (%d); dropping oldest %d",
                    speaker, len(buffer), drop,
                )
                del buffer[:drop]

            buffer.append(
                Fragment(
                    text=fragment_text,
                    timestamp=ts,
                    is_complete=self._classifier.is_complete(fragment_text),
                )
            )
            self._fragments[speaker] = buffer

            if sealed is not None:
                if self._should_aggregate(buffer):
                    fresh = self._seal(speaker, buffer)
                    return CompleteUtterance(
                        text=join_fragments([sealed.text, fresh.text]),
                        should_respond=sealed.should_respond or fresh.should_respond,
                    )
                return sealed
            if self._should_aggregate(buffer):
                return self._seal(speaker, buffer)
            return PendingFragment(should_wait=True)
        except Exception as e:
            logger.exception("Fragment aggregation failed for speaker %s", speaker)
            return PendingFragment(
                should_wait=True,
                fault=AggregationFault(operation="aggregate", speaker_id=speaker, error=str(e)),
            )

    def flush(self, speaker_id: object) -> str | None:
        """Force aggregation of whatever is buffered for a speaker. None when nothing is buffered."""
        speaker = self.normalize_speaker(speaker_id)
        try:
            frags = self._fragments.pop(speaker, None)
            if not frags or not isinstance(frags, list):
                return None
            text = join_fragments(f.text for f in frags)
            return text or None
        except Exception:
            logger.exception("Fragment flush failed for speaker %s", speaker)
            return None

    def collect_stale(self, now_ms: float | None = None) -> list[tuple[str, CompleteUtterance]]:
        """
        Tick-style sweep: seal every buffer whose last fragment is older than the
        pause threshold (or already complete). Returns (speaker_id, utterance) pairs.
        """
        now = self.normalize_timestamp(now_ms) if now_ms is not None else self._clock()
        sealed: list[tuple[str, CompleteUtterance]] = []
        for speaker in list(self._fragments):
            try:
                buffer = self._fragments.get(speaker)
                if not isinstance(buffer, list):
                    self._drop_corrupted(speaker)
                    continue
                if buffer and self._at_boundary(buffer, now):
                    sealed.append((speaker, self._seal(speaker, buffer)))
            except Exception:
                logger.exception("Stale sweep failed for speaker %s; dropping buffer", speaker)
                self._fragments.pop(speaker, None)
        return sealed

    def clean_old_fragments(self, now_ms: float) -> None:
        """Drop fragments older than max age from every speaker; delete empty or corrupted buffers."""
        for speaker in list(self._fragments):
            try:
                frags = self._fragments[speaker]
                if not isinstance(frags, list):
                    self._drop_corrupted(speaker)
                    continue
                fresh = [
                    f for f in frags
                    if isinstance(f, Fragment) and now_ms - f.timestamp <= self._max_age_ms
                ]
                if fresh:
                    self._fragments[speaker] = fresh
                else:
                    del self._fragments[speaker]
            except Exception as e:
                logger.warning("Cleanup failed for speaker %s (%s); dropping buffer", speaker, e)
                self._fragments.pop(speaker, None)

    def _drop_corrupted(self, speaker: str) -> None:
        logger.warning(
            "Corrupted fragment buffer for speaker %s (%s); dropping",
            speaker, type(self._fragments.get(speaker)).__name__,
        )
        self._fragments.pop(speaker, None)

    def _at_boundary(self, buffer: list[Fragment], now_ms: float) -> bool:
        last = buffer[-1]
        return last.is_complete or now_ms - last.timestamp > self._pause_ms

    def _should_aggregate(self, buffer: list[Fragment]) -> bool:
        if not buffer:
            return False
        last = buffer[-1]
        if last.is_complete:
            return True
        if sum(len(f.text) for f in buffer) > self._max_chars:
            return True
        if self._clock() - last.timestamp > self._pause_ms:
            return True
        return False

    def _seal(self, speaker: str, buffer: list[Fragment]) -> CompleteUtterance:
        text = join_fragments(f.text for f in buffer)
        self._fragments.pop(speaker, None)
        return CompleteUtterance(text=text, should_respond=self._classifier.contains_question(text))

    # --- introspection ---

    def state(self, speaker_id: object) -> SpeakerState:
        speaker = self.normalize_speaker(speaker_id)
        return SpeakerState.BUFFERING if self._fragments.get(speaker) else SpeakerState.EMPTY

    def buffered_speakers(self) -> list[str]:
        return [s for s, frags in self._fragments.items() if frags]

    def get_speaker_fragments(self, speaker_id: object) -> list[Fragment]:
        speaker = self.normalize_speaker(speaker_id)
        frags = self._fragments.get(speaker)
        return list(frags) if isinstance(frags, list) else []

    def clear_speaker_fragments(self, speaker_id: object) -> None:
        self._fragments.pop(self.normalize_speaker(speaker_id), None)

    def clear_all_fragments(self) -> None:
        self._fragments.clear()

    def get_stats(self) -> AggregatorStats:
        try:
            counts = {s: len(f) for s, f in self._fragments.items() if isinstance(f, list)}
            timestamps = [
                frag.timestamp
                for frags in self._fragments.values() if isinstance(frags, list)
                for frag in frags
            ]
            oldest_age = self._clock() - min(timestamps) if timestamps else None
            return AggregatorStats(
                active_speakers=len(counts),
                total_fragments=sum(counts.values()),
                speaker_fragment_counts=counts,
                oldest_fragment_age_ms=oldest_age,
            )
        except Exception as e:
            logger.warning("Aggregator stats failed: %s", e)
            return AggregatorStats()
