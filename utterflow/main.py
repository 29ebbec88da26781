"""
FastAPI app: WebSocket endpoint for live meeting transcript events;
HTTP API: session stats and coalesced transcript.

Client sends JSON text frames:
  { "type": "stt", "text": "...", "speakerId": "A", "timestamp": unix_ms, "confidence": 0.0-1.0, "isFinal": bool }
  { "type": "speaker_change", "speakerId": "B", "previousSpeaker": "A", "timestamp": unix_ms }
  { "type": "silence", "speakerId": "A", "silenceDuration": ms, "timestamp": unix_ms }
  { "type": "interrupt", "text": "...", "speakerId": "A" }
  { "type": "end" }   flush every speaker and close the session
Server responds with JSON: session, transcript, utterance, reply, session_closed.
"""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from utterflow.config import get_settings
from utterflow.logging_setup import configure_logging
from utterflow.schemas.session import SessionStatsResponse, TranscriptEntryOut, TranscriptResponse
from utterflow.session import MeetingSession
from utterflow.session_store import create_session, delete_session, get_session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    logger.info("utterflow starting (responder=%s)", settings.RESPONDER_BACKEND)
    yield
    logger.info("utterflow shutting down")


app = FastAPI(
    title="Live utterance aggregation",
    description="Turns streaming multi-speaker STT fragments into complete utterances and assistant replies",
    lifespan=lifespan,
)


async def _tick_loop(session: MeetingSession, interval_sec: float) -> None:
    """Seal buffers that went quiet even when no further events arrive."""
    while not session.closed:
        await asyncio.sleep(interval_sec)
        await session.tick()


@app.websocket("/ws/meeting")
async def websocket_meeting(websocket: WebSocket) -> None:
    """One WebSocket = one meeting session. Session stays readable over REST after disconnect."""
    await websocket.accept()

    async def send(payload: dict) -> None:
        await websocket.send_text(json.dumps(payload))

    session = create_session(on_message=send)
    await send({"type": "session", "session_id": session.session_id})
    tick_task = asyncio.create_task(_tick_loop(session, get_settings().SESSION_TICK_SEC))
    ended = False
    try:
        while True:
            msg = await websocket.receive()
            if msg.get("type") == "websocket.disconnect":
                break
            text = msg.get("text")
            if text is None:
                continue
            try:
                raw = json.loads(text)
            except json.JSONDecodeError as e:
                logger.warning("Session %s: invalid JSON frame ignored: %s", session.session_id, e)
                continue
            if isinstance(raw, dict) and raw.get("type") == "end":
                flushed = await session.close()
                await send({"type": "session_closed", "session_id": session.session_id, "flushed": len(flushed)})
                ended = True
                break
            await session.handle_event(raw)
    except WebSocketDisconnect:
        pass
    finally:
        tick_task.cancel()
        try:
            await tick_task
        except asyncio.CancelledError:
            pass
        if not ended:
            session.set_message_sink(None)
            await session.close()
    if ended:
        await websocket.close()


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


def _require_session(session_id: str) -> MeetingSession:
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@app.get("/api/sessions/{session_id}/stats", response_model=SessionStatsResponse)
async def session_stats(session_id: str) -> SessionStatsResponse:
    return SessionStatsResponse(**_require_session(session_id).stats())


@app.get("/api/sessions/{session_id}/transcript", response_model=TranscriptResponse)
async def session_transcript(session_id: str) -> TranscriptResponse:
    session = _require_session(session_id)
    entries = [TranscriptEntryOut(**e.to_dict()) for e in session.transcript.entries()]
    return TranscriptResponse(session_id=session_id, entries=entries, text=session.transcript.text())


@app.delete("/api/sessions/{session_id}")
async def remove_session(session_id: str) -> dict:
    session = _require_session(session_id)
    if not session.closed:
        await session.close()
    delete_session(session_id)
    return {"session_id": session_id, "deleted": True}
