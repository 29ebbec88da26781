"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Fragment aggregation (per speaker buffer)
    FRAGMENT_MAX_AGE_MS: int = 5000  # fragments older than this are purged on each aggregate call
    FRAGMENT_MAX_PER_SPEAKER: int = 100  # hard cap; oldest half dropped on overflow
    AGGREGATE_MAX_CHARS: int = 200  # total buffered chars above this → aggregate
    AGGREGATE_PAUSE_MS: int = 3000  # gap since last fragment above this → aggregate
    UNKNOWN_SPEAKER_ID: str = "unknown"

    # Confidence reported for utterances completed by the aggregator / by flush
    AGGREGATED_CONFIDENCE: float = 0.85
    FLUSH_CONFIDENCE: float = 0.8

    # Silence event: minimum reported silence before it counts as end-of-utterance
    SILENCE_MIN_DURATION_MS: int = 3000

    # Transcript coalescing (final lines only)
    COALESCE_WINDOW_MS: int = 12000
    COALESCE_JACCARD_THRESHOLD: float = 0.7

    # Vocal interrupts ("stop", "wait", ...): clear buffers and respond immediately
    INTERRUPT_ENABLED: bool = True
    INTERRUPT_KEYWORDS: str = "stop,pause,wait,hold on,shut up,quiet,enough"  # comma-separated
    INTERRUPT_SENSITIVITY: Literal["low", "medium", "high"] = "medium"
    INTERRUPT_COOLDOWN_MS: int = 2000

    # Conversation context: keyword topics and per-speaker recent utterances
    CONTEXT_TRACKING_ENABLED: bool = True
    CONTEXT_MAX_KEYWORDS: int = 100
    HISTORY_MAX_UTTERANCES: int = 10
    MAX_ACTIVE_SPEAKERS: int = 10

    # Responder (AI reply for utterances that should be answered): cloudflare | none
    RESPONDER_BACKEND: str = "none"
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    RESPONDER_CF_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    RESPONDER_MAX_TOKENS: int = 512
    RESPONDER_TIMEOUT_SEC: float = 30.0
    RESPONDER_CONTEXT_LINES: int = 8  # recent transcript lines sent as context with the utterance

    # Session: periodic sweep of stale buffers (WebSocket only)
    SESSION_TICK_SEC: float = 1.0
    SESSION_CLOSE_TIMEOUT_SEC: float = 10.0

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also write to rotating file (empty = console only).
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
