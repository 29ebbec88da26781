"""
Vocal interrupt detection ("stop", "wait", "hold on", ...).

Sensitivity:
- high: keyword anywhere in the text (substring).
- medium: keyword as a whole word.
- low: text starts with the keyword.
A cooldown suppresses repeated detections from the same burst of speech.
"""
from __future__ import annotations

import logging
import re
import time
from typing import Callable, Iterable

from utterflow.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS = ("stop", "pause", "wait", "hold on", "shut up", "quiet", "enough")


def parse_keywords(raw: str) -> list[str]:
    """Comma-separated keywords from config → lowercase list."""
    return [k.strip().lower() for k in (raw or "").split(",") if k.strip()]


class InterruptDetector:
    def __init__(
        self,
        keywords: Iterable[str] | None = None,
        sensitivity: str | None = None,
        cooldown_ms: float | None = None,
        require_exact_match: bool = False,
        clock: Callable[[], float] | None = None,
    ) -> None:
        settings = get_settings()
        if keywords is None:
            keywords = parse_keywords(settings.INTERRUPT_KEYWORDS) or DEFAULT_KEYWORDS
        self._keywords = [k.lower() for k in keywords if k]
        self._sensitivity = (sensitivity or settings.INTERRUPT_SENSITIVITY).lower()
        self._cooldown_ms = cooldown_ms if cooldown_ms is not None else settings.INTERRUPT_COOLDOWN_MS
        self._require_exact_match = require_exact_match
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._patterns = {k: re.compile(rf"\b{re.escape(k)}\b") for k in self._keywords}
        self._last_interrupt_ms: float | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def last_interrupt_ms(self) -> float | None:
        return self._last_interrupt_ms

    def detect(self, text: str, now_ms: float | None = None) -> bool:
        """True when text is an interrupt and the cooldown has elapsed. Fires callbacks on detection."""
        if not isinstance(text, str) or not text.strip():
            return False
        now = now_ms if now_ms is not None else self._clock()
        if self._last_interrupt_ms is not None and now - self._last_interrupt_ms < self._cooldown_ms:
            return False

        lowered = text.lower().strip()
        if self._require_exact_match:
            interrupted = lowered.rstrip(".!?") in self._keywords
        elif self._sensitivity == "high":
            interrupted = any(k in lowered for k in self._keywords)
        elif self._sensitivity == "low":
            interrupted = any(lowered.startswith(k) for k in self._keywords)
        else:
            interrupted = any(p.search(lowered) for p in self._patterns.values())

        if interrupted:
            self._last_interrupt_ms = now
            self._fire()
        return interrupted

    def _fire(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning("Interrupt callback failed: %s", e)

    def on_interrupt(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def reset(self) -> None:
        self._last_interrupt_ms = None
