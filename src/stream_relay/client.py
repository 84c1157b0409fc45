"""HTTP client that follows a conversation stream and resumes after drops.

The client remembers the highest sequence it has received per conversation
and reconnects with ``lastSequence=<cursor>``, so the server only replays
what was missed.

Usage::

    client = ResumableStreamClient(base_url="http://localhost:3001")
    async for chunk in client.stream("c1", message="hello"):
        print(chunk.sequence, chunk.content)
    await client.close()
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from stream_relay.exceptions import StreamDisconnectedError
from stream_relay.resilience import RECONNECT_RETRY_POLICY, RetryPolicy, backoff_delay
from stream_relay.streaming.chunk import NO_SEQUENCE, Chunk

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(connect=5.0, read=60.0, write=10.0, pool=5.0)
_LIVE_STATUSES = ("pending", "streaming")


class ResumableStreamClient:
    """Async SSE client for the stream server."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        retry_policy: Optional[RetryPolicy] = None,
        timeout: httpx.Timeout = _DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._policy = retry_policy or RECONNECT_RETRY_POLICY
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )
        self.cursors: Dict[str, int] = {}

    # ── Streaming ────────────────────────────────────────────────────────

    async def stream(
        self,
        conversation_id: str,
        message: str = "",
        last_sequence: Optional[int] = None,
    ) -> AsyncIterator[Chunk]:
        """Yield the conversation's chunks until it completes or fails.

        Transport errors trigger a reconnect with backoff.  A stream that
        closes without a final chunk is resumed only while the server still
        reports the conversation as live.
        """
        if last_sequence is not None:
            self.cursors[conversation_id] = last_sequence
        attempt = 0

        while True:
            cursor = self.cursors.get(conversation_id, NO_SEQUENCE)
            try:
                async with aclosing(
                    self._stream_once(conversation_id, message, cursor)
                ) as chunks:
                    async for chunk in chunks:
                        attempt = 0
                        yield chunk
                        if chunk.is_terminal:
                            return
            except self._policy.retryable_exceptions as exc:
                if attempt >= self._policy.max_retries:
                    raise StreamDisconnectedError(
                        f"Gave up on {conversation_id} after {attempt} reconnects: {exc}",
                        conversation_id=conversation_id,
                        last_sequence=self.cursors.get(conversation_id, NO_SEQUENCE),
                    ) from exc
                delay = backoff_delay(attempt, self._policy)
                attempt += 1
                logger.warning(
                    "Stream %s dropped (%s), reconnect %d/%d in %.1fs from seq=%d",
                    conversation_id, exc, attempt, self._policy.max_retries,
                    delay, self.cursors.get(conversation_id, NO_SEQUENCE),
                )
                await asyncio.sleep(delay)
                continue

            # Closed cleanly without a final chunk (manual end, proxy timeout...)
            state = await self.status(conversation_id)
            if not state.get("exists") or state.get("status") not in _LIVE_STATUSES:
                logger.info("Stream %s closed by server (state=%s)", conversation_id, state)
                return
            logger.info("Stream %s closed while live, resuming", conversation_id)

    async def _stream_once(
        self, conversation_id: str, message: str, cursor: int
    ) -> AsyncIterator[Chunk]:
        params: Dict[str, Any] = {"conversationId": conversation_id, "message": message}
        if cursor != NO_SEQUENCE:
            params["lastSequence"] = cursor

        async with self._client.stream("GET", "/api/chat/stream", params=params) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                if not line.startswith("data:"):
                    continue
                chunk = Chunk.from_payload(json.loads(line[len("data:"):].strip()))
                if chunk.sequence <= self.cursors.get(conversation_id, NO_SEQUENCE):
                    logger.debug("Skipping duplicate seq=%d", chunk.sequence)
                    continue
                self.cursors[conversation_id] = chunk.sequence
                yield chunk

    # ── Conversation management ──────────────────────────────────────────

    async def status(self, conversation_id: str) -> dict:
        resp = await self._client.get(f"/api/chat/status/{conversation_id}")
        resp.raise_for_status()
        return resp.json()

    async def end(self, conversation_id: str) -> dict:
        resp = await self._client.post(f"/api/chat/end/{conversation_id}")
        resp.raise_for_status()
        self.cursors.pop(conversation_id, None)
        return resp.json()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ResumableStreamClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
