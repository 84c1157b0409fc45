"""Append-only, strictly ordered log of one conversation's chunks."""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterator, List, Optional

from stream_relay.exceptions import SequenceOrderError

from .chunk import NO_SEQUENCE, Chunk


class EventLog:
    """Ordered chunks of one conversation.

    Sequences are strictly increasing but may have gaps (completion and
    error chunks use ``last_sequence + 1``).
    """

    def __init__(self) -> None:
        self._chunks: List[Chunk] = []
        self._sequences: List[int] = []

    def append(self, chunk: Chunk) -> None:
        if chunk.sequence <= self.last_sequence:
            raise SequenceOrderError(
                f"Chunk {chunk.sequence} is not after {self.last_sequence}",
                sequence=chunk.sequence,
                last_sequence=self.last_sequence,
            )
        self._chunks.append(chunk)
        self._sequences.append(chunk.sequence)

    def query(self, since_sequence: int) -> Iterator[Chunk]:
        """Lazily yield every chunk with ``sequence > since_sequence``."""
        start = bisect_right(self._sequences, since_sequence)
        # Iterate by index so chunks appended mid-iteration are picked up too.
        index = start
        while index < len(self._chunks):
            yield self._chunks[index]
            index += 1

    @property
    def last_sequence(self) -> int:
        return self._sequences[-1] if self._sequences else NO_SEQUENCE

    @property
    def last_chunk(self) -> Optional[Chunk]:
        return self._chunks[-1] if self._chunks else None

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(list(self._chunks))
