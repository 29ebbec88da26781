"""Keyword-frequency topic tracking across speakers (cheap, no NLP)."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field

from utterflow.config import get_settings

_STOP_WORDS = frozenset(
    "the a an and or but in on at to for of with by is are was were be been have has had "
    "do does did will would could should may might can this that these those i you he she "
    "it we they me him her us them".split()
)
_KEYWORDS_PER_TRANSCRIPT = 10
_WORD_STRIP_RE = re.compile(r"^[^\w']+|[^\w']+$")


@dataclass
class ContextEntry:
    keyword: str
    frequency: int = 0
    last_mentioned: float = 0.0  # unix seconds
    speaker_ids: set[str] = field(default_factory=set)


def extract_keywords(text: str, limit: int = _KEYWORDS_PER_TRANSCRIPT) -> list[str]:
    words = (_WORD_STRIP_RE.sub("", w) for w in (text or "").lower().split())
    return [w for w in words if len(w) > 2 and w not in _STOP_WORDS][:limit]


class ContextTracker:
    def __init__(self, max_keywords: int | None = None) -> None:
        self._max_keywords = max_keywords if max_keywords is not None else get_settings().CONTEXT_MAX_KEYWORDS
        self._entries: dict[str, ContextEntry] = {}

    def process_transcript(self, text: str, speaker_id: str) -> None:
        now = time.time()
        for keyword in extract_keywords(text):
            entry = self._entries.setdefault(keyword, ContextEntry(keyword=keyword))
            entry.frequency += 1
            entry.last_mentioned = now
            entry.speaker_ids.add(speaker_id)
        self._prune()

    def _prune(self) -> None:
        if len(self._entries) <= self._max_keywords:
            return
        keep = sorted(self._entries.values(), key=lambda e: e.frequency, reverse=True)[: self._max_keywords]
        self._entries = {e.keyword: e for e in keep}

    def top_keywords(self, limit: int = 10) -> list[str]:
        ranked = sorted(self._entries.values(), key=lambda e: e.frequency, reverse=True)
        return [e.keyword for e in ranked[:limit]]

    def summary(self) -> str:
        return f"Current discussion topics: {', '.join(self.top_keywords(15))}"

    def clear(self) -> None:
        self._entries.clear()
