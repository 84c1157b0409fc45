"""Resumable, multi-observer streaming of generated content."""

from .streaming import (
    NO_SEQUENCE,
    BaseProducer,
    Chunk,
    ChunkStatus,
    ConversationSession,
    SessionRegistry,
    SessionStatus,
    SimulatedProducer,
)

__version__ = "0.1.0"

__all__ = [
    "NO_SEQUENCE",
    "BaseProducer",
    "Chunk",
    "ChunkStatus",
    "ConversationSession",
    "SessionRegistry",
    "SessionStatus",
    "SimulatedProducer",
]
