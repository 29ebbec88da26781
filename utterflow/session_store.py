"""
In-memory registry of meeting sessions. session_id is generated on the backend (WebSocket).
Sessions stay readable over REST after the WebSocket closes, until deleted.
"""
from __future__ import annotations

from utterflow.session import MeetingSession, MessageSink, create_meeting_session

_session_store: dict[str, MeetingSession] = {}


def create_session(session_id: str | None = None, on_message: MessageSink | None = None) -> MeetingSession:
    """Create and register a session (id generated when not given)."""
    session = create_meeting_session(session_id=session_id, on_message=on_message)
    _session_store[session.session_id] = session
    return session


def get_session(session_id: str) -> MeetingSession | None:
    """Return session or None if not found."""
    return _session_store.get(session_id)


def delete_session(session_id: str) -> bool:
    """Remove session from store. Return True if it existed."""
    if session_id in _session_store:
        del _session_store[session_id]
        return True
    return False


def sessions() -> dict[str, MeetingSession]:
    """Return the underlying store (read-only view for debugging)."""
    return _session_store


def clear_sessions() -> None:
    _session_store.clear()
