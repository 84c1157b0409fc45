"""Tests for EventLog ordering and threshold queries."""

import pytest

from stream_relay.exceptions import SequenceOrderError
from stream_relay.streaming import NO_SEQUENCE, Chunk, EventLog

from conftest import streaming


def _log_with(*sequences: int) -> EventLog:
    log = EventLog()
    for seq in sequences:
        log.append(streaming("c1", seq))
    return log


def test_empty_log_has_no_sequence():
    log = EventLog()
    assert len(log) == 0
    assert log.last_sequence == NO_SEQUENCE
    assert log.last_chunk is None
    assert list(log.query(NO_SEQUENCE)) == []


def test_append_updates_high_water_mark():
    log = _log_with(0, 1, 2)
    assert log.last_sequence == 2
    assert log.last_chunk.sequence == 2
    assert len(log) == 3


def test_gaps_are_allowed():
    log = _log_with(0, 1, 5)
    log.append(Chunk.completion("c1", 9))
    assert [c.sequence for c in log] == [0, 1, 5, 9]


@pytest.mark.parametrize("bad", [2, 1])
def test_append_rejects_non_increasing_sequence(bad):
    log = _log_with(0, 1, 2)
    with pytest.raises(SequenceOrderError) as exc_info:
        log.append(streaming("c1", bad))
    assert exc_info.value.last_sequence == 2
    assert len(log) == 3


def test_query_returns_strictly_greater_in_order():
    log = _log_with(0, 1, 2, 3, 4)
    assert [c.sequence for c in log.query(2)] == [3, 4]
    assert [c.sequence for c in log.query(NO_SEQUENCE)] == [0, 1, 2, 3, 4]
    assert list(log.query(4)) == []
    assert list(log.query(100)) == []


def test_query_threshold_inside_a_gap():
    log = _log_with(0, 3, 7)
    assert [c.sequence for c in log.query(4)] == [7]


def test_queries_are_restartable_and_side_effect_free():
    log = _log_with(0, 1, 2)
    first = log.query(0)
    second = log.query(1)
    assert [c.sequence for c in second] == [2]
    assert [c.sequence for c in first] == [1, 2]
    assert [c.sequence for c in log.query(0)] == [1, 2]
    assert len(log) == 3
