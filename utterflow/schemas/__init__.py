"""Pydantic schemas for API responses."""
from utterflow.schemas.session import (
    AggregatorStatsOut,
    ProcessorStatsOut,
    SessionStatsResponse,
    TranscriptEntryOut,
    TranscriptResponse,
)

__all__ = [
    "AggregatorStatsOut",
    "ProcessorStatsOut",
    "SessionStatsResponse",
    "TranscriptEntryOut",
    "TranscriptResponse",
]
