"""Agent Bridge - file-based IPC between a host editor and an AI agent daemon.

Host code only needs:
    from agentbridge import Bridge, RequestMessage
"""

from agentbridge.bridge.client import Bridge, open_bridge
from agentbridge.context.sources.self_source import collect_self_source
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

__version__ = "0.1.0"

__all__ = [
    "Bridge",
    "BridgeError",
    "BridgeIOError",
    "CodeSuggestion",
    "InvalidRequest",
    "InvalidResponse",
    "RequestMessage",
    "ResponseMessage",
    "ResponseTimeout",
    "SerializationError",
    "WaitCancelled",
    "WatcherError",
    "collect_self_source",
    "open_bridge",
]
