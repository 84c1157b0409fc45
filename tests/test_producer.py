"""Tests for SimulatedProducer."""

import pytest

from stream_relay.streaming import (
    ChunkStatus,
    ConversationSession,
    SessionStatus,
    SimulatedProducer,
)

from conftest import RecordingSink


class CollectingBroadcaster:
    conversation_id = "c1"

    def __init__(self):
        self.chunks = []

    async def broadcast(self, chunk):
        self.chunks.append(chunk)
        return True


async def test_emits_cumulative_chunks_then_one_completion():
    producer = SimulatedProducer(delay=0, template="alpha beta gamma")
    out = CollectingBroadcaster()

    await producer.run("ignored", out)

    assert [c.sequence for c in out.chunks] == [0, 1, 2, 3]
    assert [c.content for c in out.chunks[:-1]] == ["alpha", "alpha beta", "alpha beta gamma"]
    assert all(c.status is ChunkStatus.STREAMING for c in out.chunks[:-1])
    completion = out.chunks[-1]
    assert completion.status is ChunkStatus.COMPLETED
    assert completion.content == ""
    assert all(c.conversation_id == "c1" for c in out.chunks)


async def test_default_template_quotes_the_input():
    producer = SimulatedProducer(delay=0)
    words = producer.render("hello")
    assert '"hello".' in words
    out = CollectingBroadcaster()
    await producer.run("hello", out)
    assert out.chunks[-2].content == " ".join(words)
    assert out.chunks[-1].sequence == len(words)


def test_negative_delay_is_rejected():
    with pytest.raises(ValueError):
        SimulatedProducer(delay=-1)


async def test_drives_a_session_to_completion():
    session = ConversationSession("c1", "hello")
    sink = RecordingSink()
    await session.attach_observer("a", sink)

    session.start(SimulatedProducer(delay=0.001, template="one two"))
    await session.wait_finished(timeout=2)

    assert session.status is SessionStatus.COMPLETED
    assert sink.sequences == [0, 1, 2]
    assert sink.chunks[1].content == "one two"
