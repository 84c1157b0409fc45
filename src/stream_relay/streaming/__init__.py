from .chunk import NO_SEQUENCE, Chunk, ChunkStatus
from .event_log import EventLog
from .client_registry import ClientRegistry, ObserverCursor, Sink
from .session import ConversationSession, SessionStatus
from .producer import (
    BaseProducer,
    Broadcaster,
    ProducerFactory,
    SimulatedProducer,
)
from .session_registry import SessionRegistry

__all__ = [
    # Data
    "NO_SEQUENCE",
    "Chunk",
    "ChunkStatus",
    "EventLog",
    # Observers
    "ClientRegistry",
    "ObserverCursor",
    "Sink",
    # Sessions
    "ConversationSession",
    "SessionStatus",
    "SessionRegistry",
    # Producers
    "BaseProducer",
    "Broadcaster",
    "ProducerFactory",
    "SimulatedProducer",
]
