"""Shared test fixtures for the stream-relay test suite."""

import asyncio
from typing import List, Optional

import pytest

from stream_relay.streaming import (
    BaseProducer,
    Chunk,
    ChunkStatus,
    ConversationSession,
    SessionRegistry,
)


class RecordingSink:
    """Sink that keeps every chunk it receives; can be broken on demand."""

    def __init__(self, name: str = "sink"):
        self.name = name
        self.chunks: List[Chunk] = []
        self.broken = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: Chunk) -> None:
        if self.broken:
            raise ConnectionResetError(f"{self.name}: broken pipe")
        self.chunks.append(chunk)

    def close(self) -> None:
        self._closed = True

    @property
    def sequences(self) -> List[int]:
        return [c.sequence for c in self.chunks]


class ManualProducer(BaseProducer):
    """Producer driven step by step from the test.

    ``await producer.push(chunk)`` broadcasts one chunk and returns whether
    the session accepted it; ``await producer.push(exc)`` makes the
    producer fail with ``exc``.
    """

    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.started = asyncio.Event()

    async def push(self, item) -> bool:
        done = asyncio.get_running_loop().create_future()
        await self._inbox.put((item, done))
        return await done

    async def run(self, initial_input: str, broadcaster) -> None:
        self.started.set()
        while True:
            item, done = await self._inbox.get()
            if isinstance(item, BaseException):
                done.set_result(False)
                raise item
            accepted = await broadcaster.broadcast(item)
            done.set_result(accepted)
            if item.status is ChunkStatus.COMPLETED:
                return


class ScriptedProducer(BaseProducer):
    """Emits fixed cumulative contents, then a completion chunk (or fails)."""

    def __init__(self, contents: List[str], fail_after: Optional[int] = None):
        self.contents = contents
        self.fail_after = fail_after

    async def run(self, initial_input: str, broadcaster) -> None:
        cid = broadcaster.conversation_id
        for sequence, content in enumerate(self.contents):
            if self.fail_after is not None and sequence >= self.fail_after:
                raise RuntimeError("model backend unavailable")
            await broadcaster.broadcast(Chunk(sequence, content, ChunkStatus.STREAMING, cid))
            await asyncio.sleep(0)
        await broadcaster.broadcast(Chunk.completion(cid, len(self.contents)))


def streaming(cid: str, sequence: int, content: str = "") -> Chunk:
    return Chunk(sequence, content or f"text-{sequence}", ChunkStatus.STREAMING, cid)


@pytest.fixture
def manual_producer() -> ManualProducer:
    return ManualProducer()


@pytest.fixture
async def manual_session(manual_producer):
    """A streaming session whose producer is driven by the test."""
    session = ConversationSession("c1", "hello")
    session.start(manual_producer)
    await manual_producer.started.wait()
    yield session
    await session.end_manually()
    await session.wait_finished(timeout=1)


@pytest.fixture
async def completed_session():
    """Session 'c1' whose producer emitted seq 0..3 streaming and seq 4 completed."""
    session = ConversationSession("c1", "hello")
    session.start(ScriptedProducer(["This", "This is", "This is a", "This is a reply"]))
    await session.wait_finished(timeout=1)
    yield session
    await session.end_manually()


@pytest.fixture
async def registry():
    reg = SessionRegistry(
        producer_factory=lambda: ScriptedProducer(["one", "one two", "one two three"]),
        sweep_interval=60,
        idle_timeout=30 * 60,
    )
    yield reg
    await reg.stop()
