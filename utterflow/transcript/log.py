"""
TranscriptLog: in-memory, ordered list of final transcript lines for one session.

Only final STT results are added. Each add either appends a new entry or
coalesces into the last entry (see TranscriptCoalescer). Persistence is left
to the consumer; entries() / text() are the read surface.
"""
from __future__ import annotations

import logging

from utterflow.transcript.coalescer import TranscriptCoalescer, TranscriptEntry

logger = logging.getLogger(__name__)


class TranscriptLog:
    def __init__(self, coalescer: TranscriptCoalescer | None = None) -> None:
        self._coalescer = coalescer or TranscriptCoalescer()
        self._entries: list[TranscriptEntry] = []

    def add(self, entry: TranscriptEntry) -> tuple[TranscriptEntry, bool]:
        """Append or coalesce. Returns (entry now holding the text, coalesced)."""
        last = self._entries[-1] if self._entries else None
        if self._coalescer.should_coalesce(last, entry):
            logger.debug("Coalescing transcript entry %s: %r -> %r", last.entry_id, last.text, entry.text)
            return self._coalescer.merge_into(last, entry), True
        self._entries.append(entry)
        return entry, False

    def last(self) -> TranscriptEntry | None:
        return self._entries[-1] if self._entries else None

    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    def recent_lines(self, n: int) -> list[str]:
        if n <= 0:
            return []
        return [f"[{e.speaker_id}] {e.text.strip()}" for e in self._entries[-n:]]

    def text(self) -> str:
        return "\n".join(f"[{e.speaker_id}] {e.text.strip()}" for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)
