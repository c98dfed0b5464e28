"""Error taxonomy for the file-based agent bridge.

Every Bridge operation raises one of these instead of leaking raw OSError or
json.JSONDecodeError to the host. "No response yet" is not an error:
check_response() simply returns None.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class BridgeIOError(BridgeError):
    """Creating, reading, writing or deleting a transport file failed."""


class SerializationError(BridgeError):
    """A message could not be encoded to or decoded from JSON."""


class InvalidRequest(BridgeError):
    """A request failed validation (e.g. empty query)."""


class InvalidResponse(BridgeError):
    """The response file exists but does not hold a valid response."""

    def __init__(self, message: str = "agent returned malformed output"):
        super().__init__(message)


class ResponseTimeout(BridgeError):
    """No valid response appeared within the wait window."""

    def __init__(self, timeout: float, message: Optional[str] = None):
        self.timeout = timeout
        super().__init__(message or f"agent did not respond in time ({timeout:.1f}s)")


class WatcherError(BridgeError):
    """Filesystem change notifications could not be established."""


class WaitCancelled(BridgeError):
    """A blocking wait was cancelled by the caller."""
