"""Tests for ResumableStreamClient reconnect and resume behaviour."""

import json

import httpx
import pytest

from stream_relay.client import ResumableStreamClient
from stream_relay.exceptions import StreamDisconnectedError
from stream_relay.resilience import RetryPolicy, backoff_delay
from stream_relay.streaming import Chunk, ChunkStatus

from conftest import streaming

NO_WAIT = RetryPolicy(
    max_retries=2,
    base_delay=0,
    jitter=0,
    retryable_exceptions=(httpx.TransportError,),
)


def _frames(*chunks: Chunk, drop: bool = False):
    async def body():
        for chunk in chunks:
            yield f"data: {json.dumps(chunk.to_payload())}\n\n".encode()
        if drop:
            raise httpx.ReadError("connection reset")
    return body()


class FakeServer:
    """Scripted responses for successive stream requests."""

    def __init__(self, streams, status=None):
        self.streams = list(streams)
        self.status = status or {"exists": False}
        self.stream_params = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/chat/stream":
            self.stream_params.append(dict(request.url.params))
            make = self.streams.pop(0)
            return make()
        if request.url.path.startswith("/api/chat/status/"):
            return httpx.Response(200, json=self.status)
        if request.url.path.startswith("/api/chat/end/"):
            return httpx.Response(200, json={"success": True, "message": "Conversation ended"})
        return httpx.Response(404)


def _client(server: FakeServer) -> ResumableStreamClient:
    return ResumableStreamClient(
        base_url="http://relay.test",
        retry_policy=NO_WAIT,
        transport=httpx.MockTransport(server.handler),
    )


def _ok(*chunks, drop=False):
    return lambda: httpx.Response(200, content=_frames(*chunks, drop=drop))


async def test_reconnects_from_last_received_sequence():
    server = FakeServer([
        _ok(streaming("c1", 0), streaming("c1", 1), drop=True),
        # The server replays seq 1 again; the client must not yield it twice
        _ok(streaming("c1", 1), streaming("c1", 2), Chunk.completion("c1", 3)),
    ])
    async with _client(server) as client:
        chunks = [c async for c in client.stream("c1", message="hello")]

    assert [c.sequence for c in chunks] == [0, 1, 2, 3]
    assert chunks[-1].status is ChunkStatus.COMPLETED
    assert "lastSequence" not in server.stream_params[0]
    assert server.stream_params[0]["message"] == "hello"
    assert server.stream_params[1]["lastSequence"] == "1"
    assert client.cursors["c1"] == 3


async def test_gives_up_after_max_retries():
    def refuse():
        raise httpx.ConnectError("connection refused")

    server = FakeServer([refuse] * 3)
    async with _client(server) as client:
        with pytest.raises(StreamDisconnectedError) as exc_info:
            async for _ in client.stream("c1"):
                pass

    assert exc_info.value.conversation_id == "c1"
    assert len(server.stream_params) == NO_WAIT.max_retries + 1


async def test_clean_close_of_live_conversation_is_resumed():
    server = FakeServer(
        [
            _ok(streaming("c1", 0)),
            _ok(streaming("c1", 1), Chunk.completion("c1", 2)),
        ],
        status={"exists": True, "status": "streaming"},
    )
    async with _client(server) as client:
        chunks = [c async for c in client.stream("c1")]

    assert [c.sequence for c in chunks] == [0, 1, 2]
    assert server.stream_params[1]["lastSequence"] == "0"


async def test_clean_close_of_ended_conversation_stops():
    server = FakeServer([_ok(streaming("c1", 0))], status={"exists": False})
    async with _client(server) as client:
        chunks = [c async for c in client.stream("c1")]

    assert [c.sequence for c in chunks] == [0]
    assert len(server.stream_params) == 1


async def test_error_chunk_ends_stream():
    server = FakeServer([
        _ok(streaming("c1", 0), Chunk.failure("c1", 1, "generation failed: boom")),
    ])
    async with _client(server) as client:
        chunks = [c async for c in client.stream("c1")]

    assert chunks[-1].status is ChunkStatus.ERROR
    assert chunks[-1].error == "generation failed: boom"


async def test_explicit_last_sequence_and_end():
    server = FakeServer([_ok(streaming("c1", 5), Chunk.completion("c1", 6))])
    async with _client(server) as client:
        chunks = [c async for c in client.stream("c1", last_sequence=4)]
        assert server.stream_params[0]["lastSequence"] == "4"
        assert [c.sequence for c in chunks] == [5, 6]

        body = await client.end("c1")
        assert body["success"] is True
        assert "c1" not in client.cursors


def test_backoff_delay_grows_and_is_capped():
    policy = RetryPolicy(base_delay=1.0, backoff_factor=2.0, max_delay=5.0, jitter=0)
    assert [backoff_delay(n, policy) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]
