# tests/conftest.py

import pytest

from utterflow.conversation.interrupt import InterruptDetector
from utterflow.conversation.processor import ConversationProcessor
from utterflow.fragments.aggregator import FragmentAggregator
from utterflow.session_store import clear_sessions


class FakeClock:
    """Controllable millisecond clock for aggregator / interrupt timing."""

    def __init__(self, now: float = 10_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def aggregator(clock):
    return FragmentAggregator(
        max_age_ms=5000,
        max_fragments=100,
        max_chars=200,
        pause_ms=3000,
        unknown_speaker="unknown",
        clock=clock,
    )


@pytest.fixture
def processor(aggregator):
    """Processor without interrupt detection (keywords like "wait" would fire on normal speech)."""
    return ConversationProcessor(aggregator=aggregator, enable_interrupts=False, enable_context=True)


@pytest.fixture
def interrupting_processor(aggregator, clock):
    return ConversationProcessor(
        aggregator=aggregator,
        interrupt_detector=InterruptDetector(sensitivity="medium", cooldown_ms=2000, clock=clock),
        enable_interrupts=True,
    )


@pytest.fixture(autouse=True)
def _reset_sessions():
    clear_sessions()
    yield
    clear_sessions()
