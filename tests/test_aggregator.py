# tests/test_aggregator.py

from utterflow.fragments.aggregator import FragmentAggregator
from utterflow.fragments.heuristics import HeuristicClassifier
from utterflow.fragments.models import CompleteUtterance, PendingFragment, SpeakerState


def _feed(aggregator, clock, speaker, text, ts):
    clock.now = ts
    return aggregator.aggregate(text, speaker, ts)


def test_question_fragment_completes_immediately(aggregator, clock):
    result = _feed(aggregator, clock, "A", "Is this correct?", 10_000)
    assert isinstance(result, CompleteUtterance)
    assert result.kind == "complete"
    assert result.text == "Is this correct?"
    assert result.should_respond is True
    assert aggregator.state("A") is SpeakerState.EMPTY


def test_fragments_joined_in_arrival_order(aggregator, clock):
    assert isinstance(_feed(aggregator, clock, "A", "so I think", 10_000), PendingFragment)
    assert aggregator.state("A") is SpeakerState.BUFFERING
    assert isinstance(_feed(aggregator, clock, "A", "we ship it", 10_500), PendingFragment)
    result = _feed(aggregator, clock, "A", "on friday.", 11_000)
    assert isinstance(result, CompleteUtterance)
    assert result.text == "so I think, we ship it, on friday."
    assert result.should_respond is False
    assert aggregator.get_speaker_fragments("A") == []


def test_speakers_are_buffered_independently(aggregator, clock):
    _feed(aggregator, clock, "A", "the budget is", 10_000)
    _feed(aggregator, clock, "B", "I agree with", 10_100)
    result = _feed(aggregator, clock, "A", "approved.", 10_200)
    assert result.text == "the budget is, approved."
    assert [f.text for f in aggregator.get_speaker_fragments("B")] == ["I agree with"]


def test_pending_result_shape(aggregator, clock):
    result = _feed(aggregator, clock, "A", "let me think", 10_000)
    assert result == PendingFragment(should_wait=True)
    assert result.kind == "fragment"
    assert not result.degraded


def test_acknowledgement_completes_without_response(aggregator, clock):
    result = _feed(aggregator, clock, "A", "okay", 10_000)
    assert isinstance(result, CompleteUtterance)
    assert result.text == "okay."
    assert result.should_respond is False


def test_length_trigger(aggregator, clock):
    chunk = "lorem ipsum dolor sit amet " * 5  # 135 chars, no terminal punctuation
    assert isinstance(_feed(aggregator, clock, "A", chunk, 10_000), PendingFragment)
    result = _feed(aggregator, clock, "A", chunk, 10_100)
    assert isinstance(result, CompleteUtterance)
    assert result.text.endswith(".")


def test_pause_seals_previous_buffer_before_new_fragment(aggregator, clock):
    assert isinstance(_feed(aggregator, clock, "A", "so I was thinking", 10_000), PendingFragment)
    result = _feed(aggregator, clock, "A", "about lunch", 13_100)
    assert isinstance(result, CompleteUtterance)
    assert result.text == "so I was thinking."
    assert [f.text for f in aggregator.get_speaker_fragments("A")] == ["about lunch"]


def test_complete_fragment_after_pause_is_returned_with_sealed_buffer(aggregator, clock):
    _feed(aggregator, clock, "A", "so um", 10_000)
    result = _feed(aggregator, clock, "A", "Is this correct?", 14_000)
    assert isinstance(result, CompleteUtterance)
    assert result.text == "so um. Is this correct?"
    assert result.should_respond is True
    assert aggregator.get_speaker_fragments("A") == []

    # a later event past the age window has nothing left to purge
    assert isinstance(_feed(aggregator, clock, "B", "moving on", 19_500), PendingFragment)
    assert aggregator.flush("A") is None


def test_buffer_never_ends_in_complete_fragment(aggregator, clock):
    _feed(aggregator, clock, "A", "so um", 10_000)
    _feed(aggregator, clock, "A", "Done.", 14_000)
    result = _feed(aggregator, clock, "A", "next thing", 14_500)
    assert isinstance(result, PendingFragment)
    assert [f.text for f in aggregator.get_speaker_fragments("A")] == ["next thing"]


def test_late_fragment_triggers_by_clock(aggregator, clock):
    clock.now = 20_000
    result = aggregator.aggregate("a late fragment", "A", 10_000)
    assert isinstance(result, CompleteUtterance)
    assert result.text == "a late fragment."


def test_flush_is_idempotent(aggregator, clock):
    _feed(aggregator, clock, "A", "we need to", 10_000)
    assert aggregator.flush("A") == "we need to."
    assert aggregator.flush("A") is None
    assert aggregator.flush("nobody") is None


def test_aging_invariant_purges_every_speaker(aggregator, clock):
    _feed(aggregator, clock, "A", "first words", 10_000)
    _feed(aggregator, clock, "B", "other words", 12_000)
    _feed(aggregator, clock, "C", "latest words", 16_000)
    assert aggregator.get_speaker_fragments("A") == []
    assert aggregator.get_speaker_fragments("B") != []
    for speaker in ("A", "B", "C"):
        for fragment in aggregator.get_speaker_fragments(speaker):
            assert 16_000 - fragment.timestamp <= 5000


def test_cap_invariant_drops_oldest_half(clock):
    aggregator = FragmentAggregator(max_fragments=100, max_chars=10**9, pause_ms=3000, max_age_ms=10**9, clock=clock)
    for i in range(150):
        ts = 10_000 + i
        clock.now = ts
        result = aggregator.aggregate(f"w{i}", "A", ts)
        assert isinstance(result, PendingFragment)
        assert len(aggregator.get_speaker_fragments("A")) <= 100
    fragments = aggregator.get_speaker_fragments("A")
    assert fragments[-1].text == "w149"
    # arrival order preserved after the drop
    numbers = [int(f.text[1:]) for f in fragments]
    assert numbers == sorted(numbers)


def test_malformed_input_does_not_raise(aggregator):
    result = aggregator.aggregate(None, None, -1)
    assert result == PendingFragment(should_wait=True)
    assert aggregator.get_stats().total_fragments == 0
    assert isinstance(aggregator.aggregate("", "A", 10_000), PendingFragment)
    assert isinstance(aggregator.aggregate(123, "A", 10_000), PendingFragment)


def test_invalid_speaker_and_timestamp_defaults(aggregator, clock):
    clock.now = 50_000
    aggregator.aggregate("hello there", None, "not-a-number")
    aggregator.aggregate("and more", "  ", float("nan"))
    fragments = aggregator.get_speaker_fragments("unknown")
    assert [f.text for f in fragments] == ["hello there", "and more"]
    assert all(f.timestamp == 50_000 for f in fragments)


def test_integer_speaker_ids_are_accepted(aggregator, clock):
    _feed(aggregator, clock, 2, "speaker two says", 10_000)
    assert aggregator.get_speaker_fragments("2")


def test_corrupted_buffer_is_dropped(aggregator, clock):
    aggregator._fragments["B"] = "garbage"
    result = _feed(aggregator, clock, "A", "hello there", 10_000)
    assert isinstance(result, PendingFragment)
    assert "B" not in aggregator.get_stats().speaker_fragment_counts


class _BrokenClassifier(HeuristicClassifier):
    def is_complete(self, text):
        raise RuntimeError("classifier exploded")


def test_internal_fault_degrades_to_wait(clock):
    aggregator = FragmentAggregator(classifier=_BrokenClassifier(), clock=clock)
    result = aggregator.aggregate("hello", "A", 10_000)
    assert isinstance(result, PendingFragment)
    assert result.should_wait is True
    assert result.degraded
    assert result.fault.operation == "aggregate"
    assert result.fault.speaker_id == "A"
    assert "exploded" in result.fault.error


def test_collect_stale_seals_quiet_buffers(aggregator, clock):
    _feed(aggregator, clock, "A", "what about the", 10_000)
    _feed(aggregator, clock, "B", "right so", 12_000)
    clock.now = 13_500
    sealed = aggregator.collect_stale()
    assert [(speaker, u.text) for speaker, u in sealed] == [("A", "what about the.")]
    assert sealed[0][1].should_respond is True
    assert aggregator.state("A") is SpeakerState.EMPTY
    assert aggregator.state("B") is SpeakerState.BUFFERING


def test_stats_and_clearing(aggregator, clock):
    _feed(aggregator, clock, "A", "one", 10_000)
    _feed(aggregator, clock, "A", "two", 10_500)
    _feed(aggregator, clock, "B", "three", 11_000)
    clock.now = 12_000
    stats = aggregator.get_stats()
    assert stats.active_speakers == 2
    assert stats.total_fragments == 3
    assert stats.speaker_fragment_counts == {"A": 2, "B": 1}
    assert stats.oldest_fragment_age_ms == 2000
    assert stats.to_dict()["total_fragments"] == 3

    aggregator.clear_speaker_fragments("A")
    assert aggregator.get_stats().speaker_fragment_counts == {"B": 1}
    aggregator.clear_all_fragments()
    assert aggregator.get_stats().oldest_fragment_age_ms is None
    assert aggregator.buffered_speakers() == []
