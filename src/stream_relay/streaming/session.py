"""Conversation session: event log + observers + status state machine.

Lifecycle::

    pending ──start()──▶ streaming ──completed chunk──▶ completed
                              │
                              └──producer failure──▶ interrupted

``completed`` and ``interrupted`` are terminal.  ``end_manually()`` forces
``completed``-equivalent cleanup from any state.

All mutations (broadcast, attach, detach, manual end) run under the
session's own ``asyncio.Lock`` so that replay-on-attach and live fan-out
never interleave for the same observer, while unrelated conversations
never contend.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from stream_relay.exceptions import InvalidTransitionError, ProducerError
from stream_relay.observability import global_metrics, global_tracer

from .chunk import NO_SEQUENCE, Chunk, ChunkStatus
from .client_registry import ClientRegistry, Sink
from .event_log import EventLog

if TYPE_CHECKING:
    from .producer import BaseProducer

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle states for a conversation session."""
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.INTERRUPTED)


_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.STREAMING, SessionStatus.COMPLETED},
    SessionStatus.STREAMING: {SessionStatus.COMPLETED, SessionStatus.INTERRUPTED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.INTERRUPTED: set(),
}


class ConversationSession:
    """One conversation's stream, shared by all of its observers."""

    def __init__(self, conversation_id: str, initial_input: str = ""):
        self.conversation_id = conversation_id
        self.initial_input = initial_input
        self.status = SessionStatus.PENDING
        self.event_log = EventLog()
        self.registry = ClientRegistry(
            conversation_id, self.event_log, on_drained=self._on_drained
        )
        self.created_at = _utcnow()
        self.last_activity_at = self.created_at

        self._lock = asyncio.Lock()
        self._producer_task: Optional[asyncio.Task] = None
        self._producer_released = False
        self._ended = False

    # -- State machine --------------------------------------------------------

    def _transition(self, new_status: SessionStatus) -> None:
        if new_status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move session {self.conversation_id} "
                f"from {self.status.value} to {new_status.value}",
                details={"from": self.status.value, "to": new_status.value},
            )
        logger.info(
            "Session %s: %s -> %s",
            self.conversation_id, self.status.value, new_status.value,
        )
        self.status = new_status

    def touch(self) -> None:
        self.last_activity_at = _utcnow()

    @property
    def last_sequence(self) -> int:
        return self.event_log.last_sequence

    @property
    def observer_count(self) -> int:
        return self.registry.observer_count

    @property
    def ended(self) -> bool:
        return self._ended

    # -- Producer -------------------------------------------------------------

    def start(self, producer: "BaseProducer") -> None:
        """Start the producer; only the first call on a pending session counts."""
        if self.status is not SessionStatus.PENDING:
            logger.debug(
                "Session %s already %s, not restarting producer",
                self.conversation_id, self.status.value,
            )
            return
        self._transition(SessionStatus.STREAMING)
        self._producer_task = asyncio.create_task(
            self._run_producer(producer), name=f"producer-{self.conversation_id}"
        )

    async def _run_producer(self, producer: "BaseProducer") -> None:
        with global_tracer.start_span(
            "stream_relay.produce",
            attributes={"conversation.id": self.conversation_id},
        ):
            try:
                await producer.run(self.initial_input, self)
                if self.status is SessionStatus.STREAMING and not self._ended:
                    raise ProducerError(
                        f"Producer for {self.conversation_id} returned without completing"
                    )
            except asyncio.CancelledError:
                logger.info("Producer for %s cancelled", self.conversation_id)
                raise
            except Exception as exc:
                logger.error(
                    "Generation failed for %s: %s", self.conversation_id, exc,
                    exc_info=True,
                )
                await self._interrupt(exc)

    async def _interrupt(self, exc: Exception) -> None:
        async with self._lock:
            if self._ended or self.status.is_terminal:
                return
            self._transition(SessionStatus.INTERRUPTED)
            error_chunk = Chunk.failure(
                self.conversation_id,
                self.event_log.last_sequence + 1,
                f"generation failed: {exc}",
            )
            await self._append_and_deliver(error_chunk)
            global_metrics.increment_counter("stream_relay.sessions.interrupted")
            self._release_producer()

    def _release_producer(self) -> None:
        task = self._producer_task
        if task is None or self._producer_released:
            return
        self._producer_released = True
        # The producer may be releasing itself from inside its own broadcast.
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.info("Session %s producer released", self.conversation_id)

    def _on_drained(self) -> None:
        if self.status.is_terminal:
            self._release_producer()

    async def wait_finished(self, timeout: Optional[float] = None) -> None:
        """Wait until the producer task is over (finished, failed or cancelled)."""
        task = self._producer_task
        if task is None:
            return
        await asyncio.wait({task}, timeout=timeout)

    # -- Producer entry point -------------------------------------------------

    async def broadcast(self, chunk: Chunk) -> bool:
        """Append ``chunk`` and fan it out. Returns False if it was dropped."""
        async with self._lock:
            if self._ended or self.status.is_terminal:
                logger.debug(
                    "Session %s is %s, dropping seq=%d",
                    self.conversation_id,
                    "ended" if self._ended else self.status.value,
                    chunk.sequence,
                )
                return False
            await self._append_and_deliver(chunk)
            if chunk.status is ChunkStatus.COMPLETED:
                self._transition(SessionStatus.COMPLETED)
                self._release_producer()
            return True

    async def _append_and_deliver(self, chunk: Chunk) -> None:
        self.event_log.append(chunk)
        self.touch()
        delivered = await self.registry.deliver(chunk)
        global_metrics.increment_counter(
            "stream_relay.chunks.broadcast", tags={"status": chunk.status.value}
        )
        logger.debug(
            "Session %s broadcast seq=%d status=%s to %d observers",
            self.conversation_id, chunk.sequence, chunk.status.value, delivered,
        )

    # -- Observers ------------------------------------------------------------

    async def attach_observer(
        self, observer_id: str, sink: Sink, cursor: int = NO_SEQUENCE
    ) -> int:
        """Attach an observer and replay what it missed. Returns chunks sent."""
        async with self._lock:
            self.touch()
            if self._ended:
                sink.close()
                return 0
            global_metrics.increment_counter("stream_relay.observers.attached")
            sent = await self.registry.attach(
                observer_id,
                sink,
                cursor,
                completed=self.status is SessionStatus.COMPLETED,
            )
            if sent == 0 and self.status is SessionStatus.INTERRUPTED:
                # Already past the error chunk: nothing more will ever come.
                self.registry.detach(observer_id, sink)
                sink.close()
            return sent

    async def detach_observer(self, observer_id: str, sink: Optional[Sink] = None) -> bool:
        async with self._lock:
            self.touch()
            return self.registry.detach(observer_id, sink)

    # -- Termination ----------------------------------------------------------

    async def end_manually(self) -> None:
        """User-initiated termination, regardless of producer state."""
        async with self._lock:
            if self._ended:
                return
            self._ended = True
            if not self.status.is_terminal:
                self._transition(SessionStatus.COMPLETED)
            closed = self.registry.close_all()
            self._release_producer()
            self.touch()
        logger.info(
            "Session %s ended manually (%d observers closed)",
            self.conversation_id, closed,
        )

    # -- Introspection --------------------------------------------------------

    def is_evictable(self, now: datetime, idle_timeout: float) -> bool:
        return (
            self.status.is_terminal
            and self.registry.observer_count == 0
            and now - self.last_activity_at > timedelta(seconds=idle_timeout)
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "status": self.status.value,
            "last_sequence": self.last_sequence,
            "observer_count": self.observer_count,
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
        }

    def __repr__(self) -> str:
        return (
            f"ConversationSession(id={self.conversation_id!r}, "
            f"status={self.status.value}, last_sequence={self.last_sequence})"
        )
