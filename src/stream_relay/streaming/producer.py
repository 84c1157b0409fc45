"""Content producers.

A producer only ever sees a :class:`Broadcaster`: something with a
``conversation_id`` and an async ``broadcast(chunk)``.  It knows nothing
about observers or cursors; fan-out is the session's job.  Any producer
(simulated or backed by a real model) can therefore be swapped in without
touching the session.

Contract:
  - ``streaming`` chunks with strictly increasing sequences, each carrying
    the cumulative text so far;
  - then exactly one ``completed`` chunk with empty content;
  - on failure, raise instead of completing.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Protocol

from .chunk import Chunk, ChunkStatus

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    conversation_id: str

    async def broadcast(self, chunk: Chunk) -> bool: ...


class BaseProducer(ABC):
    """Generates the chunks of one conversation."""

    @abstractmethod
    async def run(self, initial_input: str, broadcaster: Broadcaster) -> None:
        """Emit every chunk through ``broadcaster.broadcast``."""
        ...


ProducerFactory = Callable[[], BaseProducer]


DEFAULT_TEMPLATE = (
    'This is a reply to "{input}". We are simulating a streaming '
    "generation process, sending the data in multiple chunks."
)


class SimulatedProducer(BaseProducer):
    """Word-by-word replay of a canned reply, paced by a fixed delay.

    Args:
        delay: Seconds to wait before each word.
        template: Reply text; ``{input}`` is replaced with the initial input.
    """

    def __init__(self, delay: float = 0.1, template: str = DEFAULT_TEMPLATE):
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self.template = template

    def render(self, initial_input: str) -> list[str]:
        return self.template.replace("{input}", initial_input).split()

    async def run(self, initial_input: str, broadcaster: Broadcaster) -> None:
        words = self.render(initial_input)
        conversation_id = broadcaster.conversation_id
        logger.info(
            "Simulating %d chunks for %s (delay=%.3fs)",
            len(words), conversation_id, self.delay,
        )

        text = ""
        for sequence, word in enumerate(words):
            await asyncio.sleep(self.delay)
            text = word if sequence == 0 else f"{text} {word}"
            await broadcaster.broadcast(
                Chunk(sequence, text, ChunkStatus.STREAMING, conversation_id)
            )

        await broadcaster.broadcast(Chunk.completion(conversation_id, len(words)))
