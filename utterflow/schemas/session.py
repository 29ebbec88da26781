"""
Schemas for session read API (stats, transcript).

Inbound WebSocket messages are not validated here: malformed STT events must
degrade, not fail, so they are coerced by ConversationEvent.from_dict instead.
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class TranscriptEntryOut(BaseModel):
    """One final transcript line (after coalescing)."""

    entry_id: str
    speaker_id: str
    text: str
    timestamp: float = Field(..., description="unix_ms of the latest revision")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    is_final: bool = True


class TranscriptResponse(BaseModel):
    """Response body for GET /api/sessions/{session_id}/transcript."""

    session_id: str
    entries: list[TranscriptEntryOut] = Field(default_factory=list)
    text: str = Field("", description="Lines formatted as '[speaker] text'")


class AggregatorStatsOut(BaseModel):
    active_speakers: int = 0
    total_fragments: int = 0
    speaker_fragment_counts: dict[str, int] = Field(default_factory=dict)
    oldest_fragment_age_ms: float | None = None


class ProcessorStatsOut(BaseModel):
    events_processed: int = 0
    error_count: int = 0
    malformed_events: int = 0
    event_counts: dict[str, int] = Field(default_factory=dict)
    active_speakers: int = 0
    conversation_topics: list[str] = Field(default_factory=list)
    fragment_aggregator: AggregatorStatsOut = Field(default_factory=AggregatorStatsOut)


class SessionStatsResponse(BaseModel):
    """Response body for GET /api/sessions/{session_id}/stats (operational, not a stable protocol)."""

    session_id: str
    closed: bool = False
    utterances: int = 0
    transcript_entries: int = 0
    pending_replies: int = 0
    replies_sent: int = 0
    reply_failures: int = 0
    responder: str | None = Field(None, description="Responder backend name, or null when disabled")
    processor: ProcessorStatsOut = Field(default_factory=ProcessorStatsOut)
