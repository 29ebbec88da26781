"""
ConversationProcessor: routes conversation events through the fragment aggregator.

Event types:
- transcript: one STT fragment (partial or final) → aggregate; a completed
  utterance that contains a question should be answered.
- speaker_change: someone else started talking → flush the previous speaker.
- silence: speaker fell silent for >= SILENCE_MIN_DURATION_MS → flush that speaker.
- interrupt: explicit interrupt → clear all buffers, respond immediately.

Never raises: malformed events degrade to a no-response result and are
counted in stats (error_count / malformed_events).
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from utterflow.config import get_settings
from utterflow.conversation.context import ContextTracker
from utterflow.conversation.fallback import (
    FallbackContext,
    FallbackFragmentProcessor,
    NullFallbackProcessor,
)
from utterflow.conversation.interrupt import InterruptDetector
from utterflow.fragments.aggregator import FragmentAggregator
from utterflow.fragments.models import CompleteUtterance

logger = logging.getLogger(__name__)

EVENT_TYPES = ("transcript", "speaker_change", "silence", "interrupt")

# fragment_type values carried on every response
COMPLETE = "COMPLETE"
FLUSHED = "FLUSHED"
FALLBACK = "FALLBACK"
FRAGMENT = "FRAGMENT"
INTERRUPT = "INTERRUPT"
NONE = "NONE"
ERROR = "ERROR"

UTTERANCE_TYPES = (COMPLETE, FLUSHED, FALLBACK)


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _coerce_number(value: Any) -> tuple[float | None, bool]:
    """Returns (number or None, malformed). Missing → (None, False)."""
    if value is None:
        return None, False
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None, True
    return float(value), False


def _coerce_speaker(value: Any) -> tuple[str | None, bool]:
    if value is None:
        return None, False
    if isinstance(value, bool):
        return None, True
    if isinstance(value, int):
        return str(value), False
    if isinstance(value, str):
        return (value.strip() or None), False
    return None, True


@dataclass
class ConversationEvent:
    """One inbound event. Use from_dict() for untrusted payloads; it never raises."""

    type: str
    text: str = ""
    speaker_id: str | None = None
    timestamp: float | None = None  # unix_ms
    confidence: float | None = None  # 0.0–1.0
    silence_duration_ms: float | None = None
    previous_speaker: str | None = None
    malformed_fields: list[str] = field(default_factory=list)

    @property
    def malformed(self) -> bool:
        return bool(self.malformed_fields)

    @classmethod
    def from_dict(cls, raw: Any) -> "ConversationEvent":
        """Accepts snake_case or camelCase keys, flat or nested under "data"."""
        if not isinstance(raw, Mapping):
            return cls(type="", malformed_fields=["event"])
        data = raw.get("data") if isinstance(raw.get("data"), Mapping) else raw
        bad: list[str] = []

        event_type = raw.get("type")
        if not isinstance(event_type, str):
            bad.append("type")
            event_type = ""

        text = _pick(data, "text")
        if text is None:
            text = ""
        elif not isinstance(text, str):
            bad.append("text")
            text = ""

        values: dict[str, Any] = {}
        for name, keys in (
            ("timestamp", ("timestamp",)),
            ("confidence", ("confidence",)),
            ("silence_duration_ms", ("silence_duration_ms", "silenceDuration", "silence_duration")),
        ):
            number, is_bad = _coerce_number(_pick(data, *keys))
            if is_bad:
                bad.append(name)
            values[name] = number
        if values["confidence"] is not None:
            values["confidence"] = min(1.0, max(0.0, values["confidence"]))

        for name, keys in (
            ("speaker_id", ("speaker_id", "speakerId", "speaker")),
            ("previous_speaker", ("previous_speaker", "previousSpeaker")),
        ):
            speaker, is_bad = _coerce_speaker(_pick(data, *keys))
            if is_bad:
                bad.append(name)
            values[name] = speaker

        return cls(type=event_type.strip().lower(), text=text, malformed_fields=bad, **values)


@dataclass
class ConversationResponse:
    should_respond: bool
    response_type: str  # "immediate" | "delayed" | "none"
    processed_text: str
    confidence: float
    speaker_id: str | None = None
    fragment_type: str = NONE
    speaker_context: list[str] = field(default_factory=list)
    conversation_topics: list[str] = field(default_factory=list)
    interrupt_detected: bool = False
    degraded: bool = False

    @property
    def is_utterance(self) -> bool:
        """True when this response carries a completed utterance."""
        return self.fragment_type in UTTERANCE_TYPES and bool(self.processed_text)

    def to_dict(self) -> dict:
        return {
            "should_respond": self.should_respond,
            "response_type": self.response_type,
            "processed_text": self.processed_text,
            "confidence": self.confidence,
            "speaker_id": self.speaker_id,
            "fragment_type": self.fragment_type,
            "speaker_context": list(self.speaker_context),
            "conversation_topics": list(self.conversation_topics),
            "interrupt_detected": self.interrupt_detected,
            "degraded": self.degraded,
        }


class ConversationProcessor:
    """
    Event dispatcher for one conversation. Holds no fragment state of its own:
    all buffering is delegated to the aggregator it was given.
    """

    def __init__(
        self,
        aggregator: FragmentAggregator | None = None,
        fallback: FallbackFragmentProcessor | None = None,
        interrupt_detector: InterruptDetector | None = None,
        context_tracker: ContextTracker | None = None,
        enable_interrupts: bool | None = None,
        enable_context: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._aggregator = aggregator or FragmentAggregator()
        self._fallback = fallback or NullFallbackProcessor()

        interrupts_on = settings.INTERRUPT_ENABLED if enable_interrupts is None else enable_interrupts
        self._interrupts = (interrupt_detector or InterruptDetector()) if interrupts_on else None
        context_on = settings.CONTEXT_TRACKING_ENABLED if enable_context is None else enable_context
        self._context = (context_tracker or ContextTracker()) if context_on else None

        self._aggregated_confidence = settings.AGGREGATED_CONFIDENCE
        self._flush_confidence = settings.FLUSH_CONFIDENCE
        self._silence_min_ms = settings.SILENCE_MIN_DURATION_MS
        self._history_max = settings.HISTORY_MAX_UTTERANCES
        self._max_speakers = settings.MAX_ACTIVE_SPEAKERS

        # speaker_id -> recent raw transcript texts; dict order = first-seen order
        self._history: dict[str, list[str]] = {}
        self._events_processed = 0
        self._error_count = 0
        self._malformed_events = 0
        self._event_counts: Counter[str] = Counter()

    @property
    def aggregator(self) -> FragmentAggregator:
        return self._aggregator

    def process_conversation_event(self, event: ConversationEvent | Mapping[str, Any]) -> ConversationResponse:
        """Handle one event. Always returns a response; never raises."""
        try:
            if not isinstance(event, ConversationEvent):
                event = ConversationEvent.from_dict(event)
            self._events_processed += 1
            self._event_counts[event.type or "invalid"] += 1
            if event.malformed:
                self._malformed_events += 1
                logger.debug("Malformed %s event fields: %s", event.type or "?", event.malformed_fields)

            if event.type == "transcript":
                return self._handle_transcript(event)
            if event.type == "speaker_change":
                return self._handle_speaker_change(event)
            if event.type == "silence":
                return self._handle_silence(event)
            if event.type == "interrupt":
                self._aggregator.clear_all_fragments()
                speaker = self._aggregator.normalize_speaker(event.speaker_id)
                return self._interrupt_response(event.text.strip() or "Interrupt detected", speaker)
            logger.debug("Ignoring event of unknown type %r", event.type)
            return self._no_action()
        except Exception:
            logger.exception("Conversation event processing failed")
            self._error_count += 1
            return self._no_action(fragment_type=ERROR, degraded=True)

    # --- handlers ---

    def _handle_transcript(self, event: ConversationEvent) -> ConversationResponse:
        if "text" in event.malformed_fields:
            self._error_count += 1
            return self._no_action(fragment_type=ERROR, degraded=True)
        text = event.text.strip()
        if not text:
            return self._no_action()

        speaker = self._aggregator.normalize_speaker(event.speaker_id)
        timestamp = self._aggregator.normalize_timestamp(event.timestamp)

        if self._interrupts is not None and self._interrupts.detect(text, now_ms=timestamp):
            logger.info("Interrupt detected from speaker %s: %r", speaker, text)
            self._aggregator.clear_all_fragments()
            return self._interrupt_response(text, speaker)

        result = self._aggregator.aggregate(text, speaker, timestamp)
        if isinstance(result, CompleteUtterance):
            confidence = max(self._aggregated_confidence, event.confidence or 0.0)
            response = self._utterance(result.text, result.should_respond, confidence, speaker, COMPLETE)
        elif result.degraded:
            self._error_count += 1
            response = self._no_action(speaker_id=speaker, fragment_type=ERROR, degraded=True)
        else:
            response = self._consult_fallback(text, speaker, timestamp, event)

        self._track(speaker, text)
        return response

    def _consult_fallback(
        self,
        text: str,
        speaker: str,
        timestamp: float,
        event: ConversationEvent,
    ) -> ConversationResponse:
        context = FallbackContext(
            speaker_changed=bool(event.previous_speaker and event.previous_speaker != speaker),
            silence_duration_ms=event.silence_duration_ms,
            previous_utterances=list(self._history.get(speaker, [])),
        )
        try:
            fallback = self._fallback.process(text, speaker, timestamp, context)
        except Exception as e:
            logger.warning("Fallback fragment processor failed: %s", e)
            self._error_count += 1
            fallback = None
        if fallback is not None and fallback.text:
            confidence = event.confidence if event.confidence is not None else self._flush_confidence
            return self._utterance(fallback.text, fallback.should_respond, confidence, speaker, FALLBACK)
        return ConversationResponse(
            should_respond=False,
            response_type="none",
            processed_text="",
            confidence=event.confidence or 0.0,
            speaker_id=speaker,
            fragment_type=FRAGMENT,
            speaker_context=self.recent_utterances(speaker),
        )

    def _handle_speaker_change(self, event: ConversationEvent) -> ConversationResponse:
        previous = event.previous_speaker
        if not previous:
            return self._no_action()
        if event.speaker_id and event.speaker_id == previous:
            return self._no_action(speaker_id=previous)
        return self._flush_speaker(previous)

    def _handle_silence(self, event: ConversationEvent) -> ConversationResponse:
        if not event.speaker_id or event.silence_duration_ms is None:
            return self._no_action()
        if event.silence_duration_ms < self._silence_min_ms:
            return self._no_action(speaker_id=event.speaker_id)
        return self._flush_speaker(event.speaker_id)

    def sweep_stale(self, now_ms: float | None = None) -> list[ConversationResponse]:
        """Seal buffers that went quiet past the pause threshold (periodic tick)."""
        try:
            sealed = self._aggregator.collect_stale(now_ms)
        except Exception:
            logger.exception("Stale sweep failed")
            self._error_count += 1
            return []
        return [
            self._utterance(u.text, u.should_respond, self._flush_confidence, speaker, FLUSHED)
            for speaker, u in sealed
            if u.text
        ]

    def flush_all(self) -> list[ConversationResponse]:
        """Flush every buffered speaker (session end)."""
        responses = []
        for speaker in self._aggregator.buffered_speakers():
            response = self._flush_speaker(speaker)
            if response.is_utterance:
                responses.append(response)
        return responses

    def _flush_speaker(self, speaker_id: str) -> ConversationResponse:
        text = self._aggregator.flush(speaker_id)
        if not text:
            return self._no_action(speaker_id=speaker_id)
        should_respond = self._aggregator.classifier.contains_question(text)
        return self._utterance(text, should_respond, self._flush_confidence, speaker_id, FLUSHED)

    # --- responses ---

    def _response_type(self, should_respond: bool, fragment_type: str, confidence: float) -> str:
        if not should_respond:
            return "none"
        if fragment_type == COMPLETE:
            return "immediate"
        return "immediate" if confidence > 0.8 else "delayed"

    def _utterance(
        self,
        text: str,
        should_respond: bool,
        confidence: float,
        speaker_id: str,
        fragment_type: str,
    ) -> ConversationResponse:
        return ConversationResponse(
            should_respond=should_respond,
            response_type=self._response_type(should_respond, fragment_type, confidence),
            processed_text=text,
            confidence=confidence,
            speaker_id=speaker_id,
            fragment_type=fragment_type,
            speaker_context=self.recent_utterances(speaker_id),
            conversation_topics=self._context.top_keywords(5) if self._context else [],
        )

    def _interrupt_response(self, text: str, speaker_id: str) -> ConversationResponse:
        return ConversationResponse(
            should_respond=True,
            response_type="immediate",
            processed_text=text,
            confidence=1.0,
            speaker_id=speaker_id,
            fragment_type=INTERRUPT,
            interrupt_detected=True,
        )

    def _no_action(
        self,
        speaker_id: str | None = None,
        fragment_type: str = NONE,
        degraded: bool = False,
    ) -> ConversationResponse:
        return ConversationResponse(
            should_respond=False,
            response_type="none",
            processed_text="",
            confidence=0.0,
            speaker_id=speaker_id,
            fragment_type=fragment_type,
            degraded=degraded,
        )

    # --- history / context ---

    def _track(self, speaker_id: str, text: str) -> None:
        history = self._history.setdefault(speaker_id, [])
        history.append(text)
        if len(history) > self._history_max:
            del history[: len(history) - self._history_max]
        while len(self._history) > self._max_speakers:
            oldest = next(iter(self._history))
            del self._history[oldest]
        if self._context is not None:
            self._context.process_transcript(text, speaker_id)

    def recent_utterances(self, speaker_id: str) -> list[str]:
        return list(self._history.get(speaker_id, []))

    def get_active_speakers(self) -> list[str]:
        return list(self._history)

    def get_conversation_summary(self) -> str:
        if self._context is None:
            return "Context tracking disabled"
        return self._context.summary()

    def clear_conversation_history(self, speaker_id: str | None = None) -> None:
        if speaker_id is not None:
            self._history.pop(speaker_id, None)
            self._aggregator.clear_speaker_fragments(speaker_id)
            return
        self._history.clear()
        if self._context is not None:
            self._context.clear()
        self._aggregator.clear_all_fragments()

    def on_interrupt(self, callback: Callable[[], None]) -> Callable[[], None] | None:
        """Register an interrupt callback; None when interrupt detection is disabled."""
        if self._interrupts is None:
            return None
        return self._interrupts.on_interrupt(callback)

    def get_stats(self) -> dict:
        try:
            return {
                "events_processed": self._events_processed,
                "error_count": self._error_count,
                "malformed_events": self._malformed_events,
                "event_counts": dict(self._event_counts),
                "active_speakers": len(self._history),
                "conversation_topics": self._context.top_keywords(10) if self._context else [],
                "fragment_aggregator": self._aggregator.get_stats().to_dict(),
            }
        except Exception as e:
            logger.warning("Processor stats failed: %s", e)
            return {"events_processed": self._events_processed, "error_count": self._error_count + 1}
