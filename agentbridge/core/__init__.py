"""Protocol core: transport paths, message schema, errors and configuration."""

from agentbridge.core.errors import (
    BridgeError,
    BridgeIOError,
    InvalidRequest,
    InvalidResponse,
    ResponseTimeout,
    SerializationError,
    WaitCancelled,
    WatcherError,
)
from agentbridge.core.protocol import CodeSuggestion, RequestMessage, ResponseMessage
from agentbridge.core.transport import TransportLocation

__all__ = [
    "BridgeError",
    "BridgeIOError",
    "CodeSuggestion",
    "InvalidRequest",
    "InvalidResponse",
    "RequestMessage",
    "ResponseMessage",
    "ResponseTimeout",
    "SerializationError",
    "TransportLocation",
    "WaitCancelled",
    "WatcherError",
]
