"""Process-wide directory of conversation sessions.

Sessions are created lazily on first attach and started right away.
A background task sweeps finished sessions that nobody has touched for
``idle_timeout`` seconds.

Usage::

    registry = SessionRegistry(producer_factory=SimulatedProducer)
    await registry.start()

    session = await registry.get_or_create("c1", "hello")
    await session.attach_observer("client-1", sink)

    await registry.stop()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from stream_relay.exceptions import ConfigurationError
from stream_relay.observability import global_metrics

from .producer import ProducerFactory, SimulatedProducer
from .session import ConversationSession

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 5 * 60
DEFAULT_IDLE_TIMEOUT = 30 * 60


class SessionRegistry:
    """Owns every live :class:`ConversationSession` and the idle sweep.

    Parameters:
        producer_factory: Builds one producer per new session.
        sweep_interval: Seconds between sweeps.
        idle_timeout: Seconds a finished, observer-less session may stay idle.
    """

    def __init__(
        self,
        producer_factory: Optional[ProducerFactory] = None,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
    ):
        if sweep_interval <= 0:
            raise ConfigurationError("sweep_interval must be positive")
        if idle_timeout < 0:
            raise ConfigurationError("idle_timeout must not be negative")
        self._producer_factory = producer_factory or SimulatedProducer
        self.sweep_interval = sweep_interval
        self.idle_timeout = idle_timeout
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(
            self._sweep_loop(), name="session-sweep"
        )
        logger.info(
            "SessionRegistry started (sweep every %.0fs, idle timeout %.0fs)",
            self.sweep_interval, self.idle_timeout,
        )

    async def stop(self) -> None:
        """Stop sweeping and end every session."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            await session.end_manually()
            await session.wait_finished()
        logger.info("SessionRegistry stopped (%d sessions ended)", len(sessions))

    async def __aenter__(self) -> "SessionRegistry":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ── Session access ────────────────────────────────────────────────────────

    async def get_or_create(
        self, conversation_id: str, initial_input: str = ""
    ) -> ConversationSession:
        """Return the conversation's session, creating and starting it if new.

        An existing session is returned unchanged; its producer is never
        restarted and ``initial_input`` is ignored.
        """
        async with self._lock:
            session = self._sessions.get(conversation_id)
            if session is not None:
                logger.info(
                    "Found session %s (status=%s)",
                    conversation_id, session.status.value,
                )
                session.touch()
                return session

            logger.info("Creating session %s", conversation_id)
            session = ConversationSession(conversation_id, initial_input)
            self._sessions[conversation_id] = session
            session.start(self._producer_factory())
            return session

    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(conversation_id)

    async def end(self, conversation_id: str) -> bool:
        """Remove and end a session right away. False if it did not exist."""
        async with self._lock:
            session = self._sessions.pop(conversation_id, None)
        if session is None:
            return False
        await session.end_manually()
        logger.info("Session %s ended and removed", conversation_id)
        return True

    def list_sessions(self) -> List[dict]:
        """Return a snapshot of all sessions."""
        return [s.snapshot() for s in self._sessions.values()]

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    # ── Background sweep ──────────────────────────────────────────────────────

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.sweep_interval)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Sweep error: %s", exc, exc_info=True)

    async def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Evict finished, observer-less sessions idle past the threshold."""
        now = now or datetime.now(timezone.utc)
        async with self._lock:
            # No await between the check and the removal: an attach cannot
            # sneak in on a session we are about to evict.
            expired = [
                s for s in self._sessions.values()
                if s.is_evictable(now, self.idle_timeout)
            ]
            for session in expired:
                del self._sessions[session.conversation_id]

        for session in expired:
            logger.info(
                "Session %s expired (status=%s, idle since %s), evicting",
                session.conversation_id,
                session.status.value,
                session.last_activity_at.isoformat(),
            )
            await session.end_manually()
        if expired:
            global_metrics.increment_counter(
                "stream_relay.sessions.evicted", value=len(expired)
            )
        return [s.conversation_id for s in expired]
