"""
Text heuristics for fragment aggregation.

Pure predicates, kept behind TextClassifier so a model-based classifier can
replace them without touching the aggregation control flow:
- is_complete: terminal punctuation or a short acknowledgement ("yes", "thanks").
- contains_question: "?" or an interrogative lead word. Intentionally permissive.
- join_fragments: best-effort readability join (commas between clauses split
  mid-sentence, single spaces, trailing period). Never raises.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable

logger = logging.getLogger(__name__)

_TERMINAL_RE = re.compile(r"[.!?]$")
_ACK_RE = re.compile(r"\b(thanks|thank you|yes|no|okay|ok)\b\.?$", re.IGNORECASE)
_QUESTION_WORD_RE = re.compile(
    r"\b(what|why|how|when|where|who|can|could|would|should)\b", re.IGNORECASE
)
_ENDS_WITH_WORD_RE = re.compile(r"\w$")
_STARTS_LOWER_RE = re.compile(r"^[a-z]")
_STARTS_PUNCT_RE = re.compile(r"^[,.;:!?]")


def is_complete(text: str) -> bool:
    """True if text ends in . ! ? or ends with a short acknowledgement word."""
    if not isinstance(text, str):
        return False
    t = text.strip()
    if not t:
        return False
    if _TERMINAL_RE.search(t):
        return True
    return bool(_ACK_RE.search(t))


def contains_question(text: str) -> bool:
    if not isinstance(text, str):
        return False
    if "?" in text:
        return True
    return bool(_QUESTION_WORD_RE.search(text))


def _naive_join(texts: Iterable[object]) -> str:
    parts = [str(t).strip() for t in texts if t is not None and str(t).strip()]
    joined = " ".join(parts)
    if joined and not _TERMINAL_RE.search(joined):
        joined += "."
    return joined


def join_fragments(texts: Iterable[str]) -> str:
    """
    Join fragment texts left to right into one utterance.

    Between two pieces: comma when the previous ends in a word character and
    the next starts lowercase (clause split by the STT provider); one space
    unless already present. Adds a trailing period when no terminal
    punctuation. Empty / non-string pieces are dropped. Returns "" when
    nothing is left.
    """
    texts = list(texts or [])
    try:
        parts: list[str] = []
        for raw in texts:
            if not isinstance(raw, str):
                continue
            current = raw.strip()
            if not current:
                continue
            if not parts:
                parts.append(current)
                continue
            prev = parts[-1]
            needs_space = not prev.endswith(" ") and not current.startswith(" ")
            needs_comma = (
                bool(_ENDS_WITH_WORD_RE.search(prev))
                and bool(_STARTS_LOWER_RE.match(current))
                and not _STARTS_PUNCT_RE.match(current)
            )
            parts[-1] = prev + ("," if needs_comma else "") + (" " if needs_space else "")
            parts.append(current)

        aggregated = "".join(parts)
        if aggregated and not _TERMINAL_RE.search(aggregated):
            aggregated += "."
        return aggregated
    except Exception as e:
        logger.warning("Fragment join failed, using naive join: %s", e)
        return _naive_join(texts)


class TextClassifier(ABC):
    """Completeness / question classification used by the aggregator."""

    @abstractmethod
    def is_complete(self, text: str) -> bool:
        ...

    @abstractmethod
    def contains_question(self, text: str) -> bool:
        ...


class HeuristicClassifier(TextClassifier):
    """Regex heuristics (default)."""

    def is_complete(self, text: str) -> bool:
        return is_complete(text)

    def contains_question(self, text: str) -> bool:
        return contains_question(text)
