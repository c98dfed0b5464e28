"""Watch/poll hybrid used to notice transport files with low latency.

Filesystem notifications (watchdog) are treated strictly as a hint to
re-check the filesystem now. The bounded poll loop is the source of truth:
notifications can be coalesced, dropped, or unavailable altogether (e.g.
inotify watch limits), and the waiter still converges within one poll
interval.
"""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from agentbridge.core.errors import (
    BridgeIOError,
    InvalidResponse,
    ResponseTimeout,
    WaitCancelled,
    WatcherError,
)
from agentbridge.core.protocol import ResponseMessage, deserialize_response
from agentbridge.core.transport import TransportLocation
from agentbridge.utils.fs import read_bytes_if_exists

logger = logging.getLogger(__name__)

# Upper bound on how long a cancelled wait may keep sleeping
CANCEL_CHECK_INTERVAL = 0.05


class DirectoryWatcher(FileSystemEventHandler):
    """
    Counts change notifications for a set of filenames in one directory.

    Waiters remember the generation they last saw and block until it moves.
    The event payload is never inspected beyond the filename.
    """

    def __init__(self, directory: Path, names: Optional[Iterable[str]] = None):
        super().__init__()
        self.directory = Path(directory)
        self.names = set(names) if names is not None else None
        self._condition = threading.Condition()
        self._generation = 0
        self._observer: Optional[Observer] = None

    @property
    def generation(self) -> int:
        with self._condition:
            return self._generation

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """
        Subscribe to notifications for the directory.

        Raises:
            WatcherError: If the OS refuses the watch
        """
        if self._observer is not None:
            return
        observer = Observer()
        try:
            observer.schedule(self, str(self.directory), recursive=False)
            observer.start()
        except OSError as e:
            raise WatcherError(f"Cannot watch {self.directory}: {e}") from e
        self._observer = observer
        logger.debug(f"Watching {self.directory}")

    def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=2.0)
        self.poke()

    def poke(self) -> None:
        """Wake every waiter as if a notification had arrived."""
        with self._condition:
            self._generation += 1
            self._condition.notify_all()

    def wait_for_change(self, since: int, timeout: float) -> int:
        """Block until the generation differs from `since` or timeout elapses."""
        with self._condition:
            if self._generation == since and timeout > 0:
                self._condition.wait_for(lambda: self._generation != since, timeout)
            return self._generation

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if self.names is not None:
            touched = {os.path.basename(str(event.src_path))}
            dest = getattr(event, "dest_path", "")
            if dest:
                touched.add(os.path.basename(str(dest)))
            if not touched & self.names:
                return
        self.poke()


class ResponseWatcher:
    """
    Detects a valid response.json via notifications with a poll fallback.

    Args:
        location: Transport paths
        poll_interval: Longest time between two filesystem checks
        require_notifications: Raise WatcherError instead of degrading to polling
        lock: Lock guarding the watch subscription (shared with the Bridge)
    """

    def __init__(
        self,
        location: TransportLocation,
        poll_interval: float = 0.5,
        require_notifications: bool = False,
        lock: Optional[threading.RLock] = None,
    ):
        self.location = location
        self.poll_interval = poll_interval
        self.require_notifications = require_notifications
        self._lock = lock or threading.RLock()
        self._watcher: Optional[DirectoryWatcher] = None
        self._notifications_failed = False

    @property
    def notifications_active(self) -> bool:
        with self._lock:
            return self._watcher is not None and self._watcher.is_running

    def ensure_watching(self) -> Optional[DirectoryWatcher]:
        """Start the watch subscription if not already active."""
        with self._lock:
            if self._watcher is not None:
                return self._watcher
            if self._notifications_failed and not self.require_notifications:
                return None
            watcher = DirectoryWatcher(
                self.location.directory, names={self.location.response_path.name}
            )
            try:
                watcher.start()
            except WatcherError as e:
                if self.require_notifications:
                    raise
                self._notifications_failed = True
                logger.warning(f"{e}; falling back to polling every {self.poll_interval}s")
                return None
            self._watcher = watcher
            return watcher

    def stop(self) -> None:
        with self._lock:
            watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

    def check(
        self, accept: Optional[Callable[[ResponseMessage], bool]] = None
    ) -> Optional[ResponseMessage]:
        """
        Single non-blocking look at response.json.

        Returns:
            ResponseMessage if present, valid and accepted; None otherwise

        Raises:
            InvalidResponse: If the file is present but malformed
            BridgeIOError: If the file exists but cannot be read
        """
        try:
            data = read_bytes_if_exists(self.location.response_path)
        except OSError as e:
            raise BridgeIOError(f"Failed to read response: {e}") from e

        # An empty file is a writer that has not finished yet
        if data is None or not data.strip():
            return None

        response = deserialize_response(data)
        if accept is not None and not accept(response):
            return None
        return response

    def wait(
        self,
        timeout: float,
        accept: Optional[Callable[[ResponseMessage], bool]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ResponseMessage:
        """
        Block the calling thread until a valid response appears.

        Re-checks the filesystem on every notification and at least once
        per poll interval. A malformed file is retried until the deadline.

        Raises:
            ResponseTimeout: Nothing parseable appeared within timeout
            InvalidResponse: A response file was present but never parsed
            WaitCancelled: `cancel` was set
            WatcherError: Notifications failed and require_notifications is set
        """
        deadline = time.monotonic() + timeout
        watcher = self.ensure_watching()
        seen = watcher.generation if watcher else 0
        last_error: Optional[InvalidResponse] = None
        next_check = time.monotonic()

        while True:
            if cancel is not None and cancel.is_set():
                raise WaitCancelled("Wait for response was cancelled")

            now = time.monotonic()
            expired = now >= deadline
            changed = watcher is not None and watcher.generation != seen
            if changed or expired or now >= next_check:
                if watcher is not None:
                    seen = watcher.generation
                try:
                    response = self.check(accept)
                except InvalidResponse as e:
                    last_error = e
                    response = None
                else:
                    if response is None:
                        last_error = None
                if response is not None:
                    return response
                next_check = time.monotonic() + self.poll_interval

            if expired:
                break

            now = time.monotonic()
            slice_ = max(min(deadline - now, next_check - now), 0.0)
            if cancel is not None:
                slice_ = min(slice_, CANCEL_CHECK_INTERVAL)

            if watcher is not None:
                watcher.wait_for_change(seen, slice_)
            elif cancel is not None:
                cancel.wait(slice_)
            else:
                time.sleep(slice_)

        if last_error is not None:
            raise InvalidResponse(f"agent returned malformed output: {last_error}") from last_error
        raise ResponseTimeout(timeout)
