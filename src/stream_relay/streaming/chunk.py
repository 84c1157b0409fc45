"""Sequenced content chunks and their wire payload."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

# Cursor value of an observer that has not received anything yet.
NO_SEQUENCE = -1


class ChunkStatus(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Chunk:
    """One immutable unit of produced content.

    ``content`` is cumulative: every streaming chunk carries the full text
    generated so far, so a resuming observer only needs the newest one.
    Completion and error chunks carry empty content.
    """
    sequence: int
    content: str
    status: ChunkStatus
    conversation_id: str
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ChunkStatus.COMPLETED, ChunkStatus.ERROR)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sequence": self.sequence,
            "content": self.content,
            "status": self.status.value,
            "conversationId": self.conversation_id,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Chunk":
        return cls(
            sequence=int(data["sequence"]),
            content=data.get("content", ""),
            status=ChunkStatus(data["status"]),
            conversation_id=data["conversationId"],
            error=data.get("error"),
        )

    @classmethod
    def completion(cls, conversation_id: str, sequence: int) -> "Chunk":
        return cls(sequence, "", ChunkStatus.COMPLETED, conversation_id)

    @classmethod
    def failure(cls, conversation_id: str, sequence: int, error: str) -> "Chunk":
        return cls(sequence, "", ChunkStatus.ERROR, conversation_id, error=error)
