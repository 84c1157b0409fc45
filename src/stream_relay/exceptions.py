class StreamRelayError(Exception):
    """Base exception for all errors in stream-relay."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

class ConfigurationError(StreamRelayError):
    """Raised when there is a configuration issue (e.g. invalid intervals)."""
    pass

class ProducerError(StreamRelayError):
    """Raised when content generation fails or ends without completing."""
    pass

class SequenceOrderError(StreamRelayError):
    """Raised when a chunk would break the strictly increasing event log."""
    def __init__(self, message: str, sequence: int, last_sequence: int, details: dict = None):
        super().__init__(message, details)
        self.sequence = sequence
        self.last_sequence = last_sequence

class InvalidTransitionError(StreamRelayError):
    """Raised on an illegal conversation session status change."""
    pass

class SinkError(StreamRelayError):
    """Base class for observer sink errors."""
    def __init__(self, message: str, observer_id: str, details: dict = None):
        super().__init__(message, details)
        self.observer_id = observer_id

class SinkClosedError(SinkError):
    """Raised when sending to a sink whose connection has gone away."""
    pass

class StreamDisconnectedError(StreamRelayError):
    """Raised by the client when a stream cannot be resumed any more."""
    def __init__(self, message: str, conversation_id: str, last_sequence: int, details: dict = None):
        super().__init__(message, details)
        self.conversation_id = conversation_id
        self.last_sequence = last_sequence
