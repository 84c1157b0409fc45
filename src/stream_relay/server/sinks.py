"""Per-request observer sink backed by an ``asyncio.Queue``.

The session pushes chunks with ``send()``; the SSE generator drains them
by iterating the sink.  ``close()`` wakes the generator with a sentinel so
a manually ended conversation also ends every open stream.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from stream_relay.exceptions import SinkClosedError
from stream_relay.streaming import Chunk

# Sentinel used to signal the SSE generator that the sink was closed
_CLOSED = object()


class QueueSink:
    """Unbounded queue between a conversation session and one HTTP response."""

    def __init__(self, observer_id: str, conversation_id: str):
        self.observer_id = observer_id
        self.conversation_id = conversation_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: Chunk) -> None:
        if self._closed:
            raise SinkClosedError(
                f"Stream for {self.observer_id} is closed",
                observer_id=self.observer_id,
            )
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[Chunk]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
