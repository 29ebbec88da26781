"""
MeetingSession: one live meeting = one aggregator/processor + one transcript log.

Inbound STT notifications {text, speakerId, timestamp, confidence, isFinal}:
- every notification (partial or final) is a transcript event for the processor;
- final notifications also go through the transcript log (coalesced or appended).

Outbound messages (via on_message):
- {"type": "utterance", ...}  completed utterance (or interrupt)
- {"type": "transcript", "entry": {...}, "coalesced": bool}
- {"type": "reply", ...}  assistant reply for an utterance that should be answered

Events are handled one at a time (asyncio.Lock). Reply generation runs in
background tasks so ingestion never waits on the responder.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from utterflow.config import get_settings
from utterflow.conversation.processor import (
    INTERRUPT,
    ConversationEvent,
    ConversationProcessor,
    ConversationResponse,
)
from utterflow.fragments.aggregator import FragmentAggregator
from utterflow.responder.base import ResponseGenerator
from utterflow.responder.service import get_responder
from utterflow.transcript.coalescer import TranscriptEntry
from utterflow.transcript.log import TranscriptLog

logger = logging.getLogger(__name__)

MessageSink = Callable[[dict], Awaitable[None]]


def generate_session_id() -> str:
    """Session id (UUID hex, 12 chars)."""
    return uuid.uuid4().hex[:12]


def _is_final(raw: Mapping[str, Any]) -> bool:
    value = raw.get("isFinal", raw.get("is_final", False))
    return value is True


@dataclass
class SessionUpdate:
    """Result of one STT notification."""

    response: ConversationResponse
    transcript_entry: TranscriptEntry | None = None
    coalesced: bool = False


class MeetingSession:
    def __init__(
        self,
        session_id: str | None = None,
        processor: ConversationProcessor | None = None,
        transcript: TranscriptLog | None = None,
        responder: ResponseGenerator | None = None,
        on_message: MessageSink | None = None,
        context_lines: int | None = None,
        close_timeout_sec: float | None = None,
    ) -> None:
        settings = get_settings()
        self.session_id = session_id or generate_session_id()
        self._processor = processor or ConversationProcessor(aggregator=FragmentAggregator())
        self._transcript = transcript or TranscriptLog()
        self._responder = responder
        self._on_message = on_message
        self._context_lines = context_lines if context_lines is not None else settings.RESPONDER_CONTEXT_LINES
        self._close_timeout_sec = (
            close_timeout_sec if close_timeout_sec is not None else settings.SESSION_CLOSE_TIMEOUT_SEC
        )
        self._lock = asyncio.Lock()
        self._pending_replies: set[asyncio.Task] = set()
        self._sink_closed = False
        self._closed = False
        self._utterance_count = 0
        self._replies_sent = 0
        self._reply_failures = 0

    @property
    def processor(self) -> ConversationProcessor:
        return self._processor

    @property
    def transcript(self) -> TranscriptLog:
        return self._transcript

    @property
    def closed(self) -> bool:
        return self._closed

    def set_message_sink(self, on_message: MessageSink | None) -> None:
        self._on_message = on_message
        self._sink_closed = False

    # --- inbound ---

    async def handle_event(self, raw: Mapping[str, Any]) -> ConversationResponse | None:
        """Dispatch one wire message by its "type" (stt/transcript, speaker_change, silence, interrupt)."""
        if not isinstance(raw, Mapping):
            logger.warning("Session %s: ignoring non-object message", self.session_id)
            return None
        kind = raw.get("type")
        if kind in ("stt", "transcript"):
            update = await self.handle_stt_result(raw)
            return update.response
        if kind in ("speaker_change", "silence", "interrupt"):
            return await self._process(ConversationEvent.from_dict(raw))
        logger.warning("Session %s: unknown message type %r", self.session_id, kind)
        return None

    async def handle_stt_result(self, raw: Mapping[str, Any]) -> SessionUpdate:
        """One STT notification. Partial and final both feed aggregation; final also feeds the transcript log."""
        event = ConversationEvent.from_dict({**raw, "type": "transcript"})
        is_final = _is_final(raw)
        async with self._lock:
            response = self._processor.process_conversation_event(event)
            entry: TranscriptEntry | None = None
            coalesced = False
            if is_final and event.text.strip() and "text" not in event.malformed_fields:
                aggregator = self._processor.aggregator
                entry, coalesced = self._transcript.add(
                    TranscriptEntry(
                        speaker_id=aggregator.normalize_speaker(event.speaker_id),
                        text=event.text.strip(),
                        timestamp=aggregator.normalize_timestamp(event.timestamp),
                        confidence=event.confidence or 0.0,
                    )
                )
                await self._send({"type": "transcript", "entry": entry.to_dict(), "coalesced": coalesced})
            await self._emit(response)
        return SessionUpdate(response=response, transcript_entry=entry, coalesced=coalesced)

    async def handle_speaker_change(
        self,
        speaker_id: str | None,
        previous_speaker: str | None,
        timestamp: float | None = None,
    ) -> ConversationResponse:
        return await self._process(
            ConversationEvent(
                type="speaker_change",
                speaker_id=speaker_id,
                previous_speaker=previous_speaker,
                timestamp=timestamp,
            )
        )

    async def handle_silence(
        self,
        speaker_id: str | None,
        silence_duration_ms: float,
        timestamp: float | None = None,
    ) -> ConversationResponse:
        return await self._process(
            ConversationEvent(
                type="silence",
                speaker_id=speaker_id,
                silence_duration_ms=silence_duration_ms,
                timestamp=timestamp,
            )
        )

    async def tick(self, now_ms: float | None = None) -> list[ConversationResponse]:
        """Seal buffers that went quiet; called periodically by the WebSocket loop."""
        async with self._lock:
            responses = self._processor.sweep_stale(now_ms)
            for response in responses:
                await self._emit(response)
        return responses

    async def _process(self, event: ConversationEvent) -> ConversationResponse:
        async with self._lock:
            response = self._processor.process_conversation_event(event)
            await self._emit(response)
        return response

    # --- outbound ---

    async def _emit(self, response: ConversationResponse) -> None:
        if response.fragment_type == INTERRUPT:
            cancelled = self._cancel_pending_replies()
            logger.info("Session %s: interrupt, cancelled %d pending replies", self.session_id, cancelled)
            await self._send({"type": "utterance", **response.to_dict()})
            return
        if not response.is_utterance:
            return
        self._utterance_count += 1
        await self._send({"type": "utterance", **response.to_dict()})
        if response.should_respond and self._responder is not None:
            self._schedule_reply(response)

    def _schedule_reply(self, response: ConversationResponse) -> None:
        context = self._transcript.recent_lines(self._context_lines)
        task = asyncio.create_task(self._generate_reply(response, context))
        self._pending_replies.add(task)
        task.add_done_callback(self._pending_replies.discard)

    async def _generate_reply(self, response: ConversationResponse, context: list[str]) -> None:
        try:
            reply = await self._responder.generate(response.processed_text, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._reply_failures += 1
            logger.warning("Session %s: reply generation failed: %s", self.session_id, e)
            return
        if not reply:
            return
        self._replies_sent += 1
        await self._send(
            {
                "type": "reply",
                "speaker_id": response.speaker_id,
                "utterance": response.processed_text,
                "text": reply,
                "confidence": response.confidence,
            }
        )

    def _cancel_pending_replies(self) -> int:
        count = 0
        for task in list(self._pending_replies):
            if not task.done():
                task.cancel()
                count += 1
        return count

    async def _send(self, payload: dict) -> None:
        if self._on_message is None or self._sink_closed:
            return
        try:
            await self._on_message(payload)
        except Exception as e:
            logger.debug("Session %s: message sink failed (%s); no further sends", self.session_id, e)
            self._sink_closed = True

    # --- lifecycle ---

    async def close(self) -> list[ConversationResponse]:
        """Flush every buffered speaker, wait for pending replies (bounded). Safe to call twice."""
        if self._closed:
            return []
        async with self._lock:
            self._closed = True
            flushed = self._processor.flush_all()
            for response in flushed:
                await self._emit(response)

        pending = [t for t in self._pending_replies if not t.done()]
        if pending:
            _, not_done = await asyncio.wait(pending, timeout=self._close_timeout_sec)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
                logger.warning("Session %s: %d replies cancelled on close", self.session_id, len(not_done))
        logger.info(
            "Session %s closed: %d utterances, %d transcript lines, %d replies",
            self.session_id, self._utterance_count, len(self._transcript), self._replies_sent,
        )
        return flushed

    def stats(self) -> dict:
        return {
            "session_id": self.session_id,
            "closed": self._closed,
            "utterances": self._utterance_count,
            "transcript_entries": len(self._transcript),
            "pending_replies": sum(1 for t in self._pending_replies if not t.done()),
            "replies_sent": self._replies_sent,
            "reply_failures": self._reply_failures,
            "responder": self._responder.name if self._responder else None,
            "processor": self._processor.get_stats(),
        }


def create_meeting_session(
    session_id: str | None = None,
    on_message: MessageSink | None = None,
) -> MeetingSession:
    """Session wired from config (responder backend, thresholds)."""
    return MeetingSession(session_id=session_id, responder=get_responder(), on_message=on_message)
