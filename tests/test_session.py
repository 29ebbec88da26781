# tests/test_session.py

import asyncio

from utterflow.conversation.interrupt import InterruptDetector
from utterflow.conversation.processor import FLUSHED, INTERRUPT, ConversationProcessor
from utterflow.responder.base import ResponseGenerator
from utterflow.session import MeetingSession, create_meeting_session
from utterflow.session_store import create_session, delete_session, get_session, sessions
from utterflow.transcript.coalescer import TranscriptCoalescer
from utterflow.transcript.log import TranscriptLog


class EchoResponder(ResponseGenerator):
    def __init__(self):
        self.calls = []

    @property
    def name(self):
        return "echo"

    async def generate(self, text, context=None):
        self.calls.append((text, list(context or [])))
        return f"answer to: {text}"


class BlockingResponder(ResponseGenerator):
    def __init__(self):
        self.release = asyncio.Event()
        self.started = 0
        self.cancelled = 0

    @property
    def name(self):
        return "blocking"

    async def generate(self, text, context=None):
        self.started += 1
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return "late answer"


class FailingResponder(ResponseGenerator):
    @property
    def name(self):
        return "failing"

    async def generate(self, text, context=None):
        raise RuntimeError("backend unavailable")


def _stt(text, speaker="A", ts=10_000, final=True, confidence=0.9):
    return {
        "type": "stt",
        "text": text,
        "speakerId": speaker,
        "timestamp": ts,
        "confidence": confidence,
        "isFinal": final,
    }


def _session(processor, responder=None, close_timeout_sec=1.0):
    messages = []

    async def sink(payload):
        messages.append(payload)

    session = MeetingSession(
        session_id="s1",
        processor=processor,
        transcript=TranscriptLog(TranscriptCoalescer(window_ms=12_000, threshold=0.7)),
        responder=responder,
        on_message=sink,
        context_lines=8,
        close_timeout_sec=close_timeout_sec,
    )
    return session, messages


async def test_final_question_is_transcribed_and_answered(processor, clock):
    responder = EchoResponder()
    session, messages = _session(processor, responder)
    update = await session.handle_stt_result(_stt("Is this correct?"))

    assert update.response.should_respond
    assert update.transcript_entry.text == "Is this correct?"
    assert not update.coalesced
    assert [m["type"] for m in messages] == ["transcript", "utterance"]
    assert messages[1]["processed_text"] == "Is this correct?"
    assert messages[1]["fragment_type"] == "COMPLETE"

    await session.close()
    assert responder.calls == [("Is this correct?", ["[A] Is this correct?"])]
    reply = messages[-1]
    assert reply == {
        "type": "reply",
        "speaker_id": "A",
        "utterance": "Is this correct?",
        "text": "answer to: Is this correct?",
        "confidence": 0.9,
    }
    assert session.stats()["replies_sent"] == 1


async def test_partial_results_skip_transcript(processor, clock):
    session, messages = _session(processor)
    update = await session.handle_stt_result(_stt("so we should", final=False))
    assert update.transcript_entry is None
    assert messages == []
    assert len(session.transcript) == 0


async def test_final_revisions_coalesce(processor, clock):
    session, messages = _session(processor)
    await session.handle_stt_result(_stt("what is", ts=10_000))
    clock.now = 11_000
    update = await session.handle_stt_result(_stt("what is today's date", ts=11_000))
    assert update.coalesced
    transcripts = [m for m in messages if m["type"] == "transcript"]
    assert [t["coalesced"] for t in transcripts] == [False, True]
    assert transcripts[0]["entry"]["entry_id"] == transcripts[1]["entry"]["entry_id"]
    assert session.transcript.text() == "[A] what is today's date"


async def test_reply_generation_does_not_block_ingestion(processor, clock):
    responder = BlockingResponder()
    session, messages = _session(processor, responder)
    await session.handle_stt_result(_stt("Is this correct?"))
    await asyncio.sleep(0)
    assert responder.started == 1
    assert session.stats()["pending_replies"] == 1

    # next event is processed while the reply is still in flight
    update = await session.handle_stt_result(_stt("and another thing", ts=10_500, final=False))
    assert update.response.fragment_type == "FRAGMENT"

    responder.release.set()
    await session.close()
    assert messages[-1]["type"] == "reply"
    assert messages[-1]["text"] == "late answer"


async def test_interrupt_cancels_pending_replies(aggregator, clock):
    processor = ConversationProcessor(
        aggregator=aggregator,
        interrupt_detector=InterruptDetector(keywords=["stop"], cooldown_ms=2000, clock=clock),
        enable_interrupts=True,
    )
    responder = BlockingResponder()
    session, messages = _session(processor, responder)
    await session.handle_stt_result(_stt("Is this correct?"))
    await asyncio.sleep(0)
    assert responder.started == 1

    clock.now = 10_500
    update = await session.handle_stt_result(_stt("stop", speaker="B", ts=10_500))
    assert update.response.fragment_type == INTERRUPT
    await asyncio.sleep(0.01)
    assert responder.cancelled == 1
    assert messages[-1]["type"] == "utterance"
    assert messages[-1]["interrupt_detected"] is True

    await session.close()
    assert not any(m["type"] == "reply" for m in messages)


async def test_reply_failures_are_counted(processor, clock):
    session, messages = _session(processor, FailingResponder())
    await session.handle_stt_result(_stt("Could you send the notes?"))
    await session.close()
    assert session.stats()["reply_failures"] == 1
    assert not any(m["type"] == "reply" for m in messages)


async def test_close_flushes_buffered_speakers_once(processor, clock):
    session, messages = _session(processor)
    await session.handle_stt_result(_stt("so we should", final=False))
    await session.handle_stt_result(_stt("I think", speaker="B", ts=10_100, final=False))

    flushed = await session.close()
    assert sorted(r.processed_text for r in flushed) == ["I think.", "so we should."]
    assert all(r.fragment_type == FLUSHED for r in flushed)
    assert session.closed
    assert await session.close() == []
    assert [m["type"] for m in messages] == ["utterance", "utterance"]


async def test_tick_seals_stale_buffers(processor, clock):
    responder = EchoResponder()
    session, messages = _session(processor, responder)
    await session.handle_stt_result(_stt("what about the", final=False))
    assert await session.tick(11_000) == []

    responses = await session.tick(14_000)
    assert [r.processed_text for r in responses] == ["what about the."]
    assert messages[-1]["fragment_type"] == FLUSHED
    await session.close()
    assert responder.calls[0][0] == "what about the."


async def test_handle_event_dispatch(processor, clock):
    session, messages = _session(processor)
    assert await session.handle_event(["not", "a", "dict"]) is None
    assert await session.handle_event({"type": "wave"}) is None

    await session.handle_event(_stt("let me check", final=False))
    response = await session.handle_event({"type": "speaker_change", "speakerId": "B", "previousSpeaker": "A"})
    assert response.processed_text == "let me check."

    await session.handle_event(_stt("one more", speaker="B", ts=10_200, final=False))
    change = await session.handle_speaker_change("C", "B")
    assert change.processed_text == "one more."
    assert (await session.handle_silence("C", 5000)).processed_text == ""


async def test_broken_sink_stops_sending(processor, clock):
    calls = []

    async def sink(payload):
        calls.append(payload)
        raise ConnectionError("socket gone")

    session = MeetingSession(processor=processor, on_message=sink)
    await session.handle_stt_result(_stt("Is this correct?"))
    assert len(calls) == 1
    await session.close()
    assert len(calls) == 1

    session.set_message_sink(None)
    await session.handle_stt_result(_stt("Ignored?", ts=10_100))


async def test_create_meeting_session_uses_config(monkeypatch):
    monkeypatch.setenv("RESPONDER_BACKEND", "none")
    session = create_meeting_session()
    assert len(session.session_id) == 12
    assert session.stats()["responder"] is None
    await session.close()


async def test_session_store_roundtrip(monkeypatch):
    monkeypatch.setenv("RESPONDER_BACKEND", "none")
    session = create_session(session_id="abc")
    assert get_session("abc") is session
    assert "abc" in sessions()
    assert delete_session("abc") is True
    assert delete_session("abc") is False
    assert get_session("abc") is None
