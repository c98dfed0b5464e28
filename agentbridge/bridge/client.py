"""Host-side facade over the file-based transport.

The Bridge is what editor code talks to. It composes the request writer,
the response watcher and cleanup into one handle that is safe to share
between threads.

Usage:
    with Bridge.open() as bridge:
        bridge.send_request(RequestMessage.create("What is Rust?"))
        response = bridge.wait_for_response(timeout=30)
        print(response.response_text)
        bridge.clear()
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from agentbridge.bridge.watcher import ResponseWatcher
from agentbridge.bridge.writer import RequestWriter
from agentbridge.core.configs import DEFAULT_RESPONSE_TIMEOUT
from agentbridge.core.errors import BridgeIOError
from agentbridge.core.protocol import RequestMessage, ResponseMessage
from agentbridge.core.transport import TransportLocation
from agentbridge.utils.fs import remove_if_exists

logger = logging.getLogger(__name__)

# Tolerated clock difference between host and daemon when no request id is echoed
CLOCK_SKEW = timedelta(seconds=1)


class Bridge:
    """
    Thread-safe handle on one transport directory.

    The only shared mutable state is the watch subscription and the
    pending request, both guarded by a single internal lock.
    """

    def __init__(
        self,
        location: TransportLocation,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
        poll_interval: float = 0.5,
        require_notifications: bool = False,
    ):
        """
        Initialize bridge.

        Args:
            location: Resolved transport directory
            response_timeout: Default timeout for wait_for_response()
            poll_interval: Fallback interval between filesystem checks
            require_notifications: Fail with WatcherError instead of polling only
        """
        self.location = location
        self.response_timeout = response_timeout
        self._lock = threading.RLock()
        self._pending: Optional[RequestMessage] = None
        self._last_rejected: Optional[Tuple[Optional[str], datetime]] = None
        self._writer = RequestWriter(location)
        self._watcher = ResponseWatcher(
            location,
            poll_interval=poll_interval,
            require_notifications=require_notifications,
            lock=self._lock,
        )

    @classmethod
    def open(
        cls,
        transport_dir: Optional[Union[str, Path]] = None,
        **kwargs: Any,
    ) -> "Bridge":
        """
        Resolve/create the transport directory and return a Bridge.

        Raises:
            BridgeIOError: If the directory cannot be created or is not writable
        """
        return cls(TransportLocation.resolve(transport_dir), **kwargs)

    def __enter__(self) -> "Bridge":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def request_path(self) -> Path:
        return self.location.request_path

    @property
    def response_path(self) -> Path:
        return self.location.response_path

    @property
    def pending_request(self) -> Optional[RequestMessage]:
        with self._lock:
            return self._pending

    def send_request(self, request: RequestMessage) -> None:
        """
        Write a request, discarding any stale response first.

        Raises:
            InvalidRequest: If the query is empty
            SerializationError: If the request cannot be encoded
            BridgeIOError: If the transport files cannot be written
        """
        with self._lock:
            self._writer.write(request)
            self._pending = request

    def wait_for_response(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ResponseMessage:
        """
        Block the calling thread until the agent answers.

        Args:
            timeout: Seconds to wait (default: self.response_timeout)
            cancel: Event that aborts the wait when set

        Returns:
            The parsed response for the pending request

        Raises:
            ResponseTimeout: No response within timeout
            InvalidResponse: Response present but malformed for the whole window
            WaitCancelled: `cancel` was set
        """
        timeout = self.response_timeout if timeout is None else timeout
        start = time.monotonic()
        response = self._watcher.wait(timeout, accept=self._is_current, cancel=cancel)
        logger.info(f"Response received after {time.monotonic() - start:.3f}s")
        return response

    def check_response(self) -> Optional[ResponseMessage]:
        """
        Non-blocking check for a response.

        Returns:
            ResponseMessage if present and valid, None if absent or stale

        Raises:
            InvalidResponse: If the file is present but malformed
        """
        return self._watcher.check(self._is_current)

    def clear(self) -> None:
        """Delete request and response files. Safe to call repeatedly."""
        with self._lock:
            try:
                remove_if_exists(self.location.request_path)
                remove_if_exists(self.location.response_path)
            except OSError as e:
                raise BridgeIOError(f"Failed to clear transport files: {e}") from e
            self._pending = None

    def close(self) -> None:
        """Stop the watch subscription."""
        self._watcher.stop()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the transport directory for diagnostics."""
        from agentbridge.daemon.lock import read_lock_info

        lock_info = read_lock_info(self.location.lock_path)
        pending = self.pending_request
        return {
            "transport_dir": str(self.location.directory),
            "request_pending": self.location.request_path.exists(),
            "response_ready": self.location.response_path.exists(),
            "processing": lock_info is not None,
            "lock_owner": lock_info,
            "notifications_active": self._watcher.notifications_active,
            "pending_request_id": pending.request_id if pending else None,
        }

    def _is_current(self, response: ResponseMessage) -> bool:
        """Reject responses that belong to an earlier exchange."""
        pending = self.pending_request
        if pending is None:
            return True

        if response.request_id and pending.request_id:
            if response.request_id == pending.request_id:
                return True
            self._log_rejected(
                response,
                f"Discarding stale response for request {response.request_id} "
                f"(waiting for {pending.request_id})",
            )
            return False

        if response.timestamp >= pending.timestamp - CLOCK_SKEW:
            return True
        self._log_rejected(
            response,
            f"Discarding stale response from {response.timestamp.isoformat()} "
            f"(request sent {pending.timestamp.isoformat()})",
        )
        return False

    def _log_rejected(self, response: ResponseMessage, message: str) -> None:
        # Warn once per stale response; repeated polls of the same file log at debug
        key = (response.request_id, response.timestamp)
        with self._lock:
            first_time = key != self._last_rejected
            self._last_rejected = key
        if first_time:
            logger.warning(message)
        else:
            logger.debug(message)


def open_bridge(transport_dir: Optional[Union[str, Path]] = None, **kwargs: Any) -> Bridge:
    """Convenience wrapper for Bridge.open()."""
    return Bridge.open(transport_dir, **kwargs)
