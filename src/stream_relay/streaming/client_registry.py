"""Attached observers of one conversation and their delivery cursors.

Every observer owns a cursor: the highest sequence already sent to it.
A chunk is sent to an observer only when its sequence is above that
cursor, which is what makes replay and live fan-out safe to interleave
(given the session serializes calls into this registry).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

from stream_relay.exceptions import SinkClosedError

from .chunk import NO_SEQUENCE, Chunk
from .event_log import EventLog

logger = logging.getLogger(__name__)


@runtime_checkable
class Sink(Protocol):
    """Push channel to one observer, created by the transport per request.

    ``send`` is awaited while the session lock is held, so it must hand the
    chunk off without blocking (e.g. ``Queue.put_nowait``). A slow sink
    would otherwise stall every other observer of the conversation.
    """

    @property
    def closed(self) -> bool: ...

    async def send(self, chunk: Chunk) -> None: ...

    def close(self) -> None: ...


@dataclass
class ObserverCursor:
    observer_id: str
    sink: Sink
    last_delivered_sequence: int = NO_SEQUENCE


class ClientRegistry:
    """Observers attached to a single conversation.

    Not locked on its own: ``ConversationSession`` is the only caller and
    serializes attach / detach / deliver.

    Parameters:
        conversation_id: Conversation the observers follow.
        event_log: The conversation's log, replayed on attach.
        on_drained: Called when the last observer detaches.
    """

    def __init__(
        self,
        conversation_id: str,
        event_log: EventLog,
        on_drained: Optional[Callable[[], None]] = None,
    ):
        self.conversation_id = conversation_id
        self._log = event_log
        self._observers: Dict[str, ObserverCursor] = {}
        self._on_drained = on_drained

    # -- Attach / detach ------------------------------------------------------

    async def attach(
        self,
        observer_id: str,
        sink: Sink,
        cursor: int = NO_SEQUENCE,
        *,
        completed: bool = False,
    ) -> int:
        """Register an observer and replay everything after ``cursor``.

        If the conversation is completed and nothing was pending, a
        synthetic completion chunk (``last_sequence + 1``) is sent so a late
        observer still learns the stream ended. Returns the number of
        chunks sent.
        """
        previous = self._observers.get(observer_id)
        if previous is not None and previous.sink is not sink:
            logger.warning("Observer %s re-attached, replacing previous sink", observer_id)
            previous.sink.close()
        entry = ObserverCursor(observer_id, sink, cursor)
        self._observers[observer_id] = entry
        logger.info(
            "Observer %s attached (cursor=%d, observers=%d)",
            observer_id, cursor, len(self._observers),
        )

        sent = 0
        for chunk in self._log.query(cursor):
            if not await self._send(entry, chunk):
                return sent
            sent += 1

        if completed and sent == 0:
            synthetic = Chunk.completion(self.conversation_id, self._log.last_sequence + 1)
            if await self._send(entry, synthetic):
                sent += 1
        return sent

    def detach(self, observer_id: str, sink: Optional[Sink] = None) -> bool:
        """Remove an observer. Unknown ids are ignored.

        With ``sink``, only the attachment that owns that sink is removed, so
        a superseded connection cannot detach its replacement.
        """
        entry = self._observers.get(observer_id)
        if entry is None or (sink is not None and entry.sink is not sink):
            return False
        del self._observers[observer_id]
        logger.info(
            "Observer %s detached (cursor=%d, observers=%d)",
            observer_id, entry.last_delivered_sequence, len(self._observers),
        )
        if not self._observers and self._on_drained is not None:
            self._on_drained()
        return True

    def close_all(self) -> int:
        """Close every sink and forget all observers."""
        entries = list(self._observers.values())
        self._observers.clear()
        for entry in entries:
            entry.sink.close()
        return len(entries)

    # -- Fan-out --------------------------------------------------------------

    async def deliver(self, chunk: Chunk) -> int:
        """Send ``chunk`` to every observer that has not seen it yet."""
        delivered = 0
        for entry in list(self._observers.values()):
            if entry.last_delivered_sequence >= chunk.sequence:
                continue
            if await self._send(entry, chunk):
                delivered += 1
        return delivered

    async def _send(self, entry: ObserverCursor, chunk: Chunk) -> bool:
        # The entry may have been replaced by a re-attach with the same id.
        if self._observers.get(entry.observer_id) is not entry:
            return False
        try:
            if entry.sink.closed:
                raise SinkClosedError("Sink is closed", observer_id=entry.observer_id)
            await entry.sink.send(chunk)
        except Exception as exc:
            logger.warning(
                "Delivery of seq=%d to observer %s failed, detaching: %s",
                chunk.sequence, entry.observer_id, exc,
            )
            self.detach(entry.observer_id)
            return False
        entry.last_delivered_sequence = chunk.sequence
        logger.debug("Sent seq=%d to observer %s", chunk.sequence, entry.observer_id)
        return True

    # -- Introspection --------------------------------------------------------

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def observer_ids(self) -> List[str]:
        return list(self._observers)

    def cursor_of(self, observer_id: str) -> Optional[int]:
        entry = self._observers.get(observer_id)
        return entry.last_delivered_sequence if entry else None

    def __contains__(self, observer_id: str) -> bool:
        return observer_id in self._observers
