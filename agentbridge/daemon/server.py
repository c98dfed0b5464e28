"""Agent daemon - the process on the other side of the transport directory.

This module implements the long-running (or single-shot) process that:
1. Notices request.json (watchdog notification, bounded poll fallback)
2. Takes the processing lock atomically so only one daemon proceeds
3. Runs the external agent and extracts code suggestions from its output
4. Writes response.json, deletes the request, and releases the lock

A malformed request or an agent timeout still produces a response whose
text explains the failure, so the host sees a prompt, readable error
instead of a silent timeout.

Usage:
    python -m agentbridge.daemon.server [--daemon] [--agent-path PATH] [--timeout SECONDS]

    Or use the CLI:
    agentbridge daemon --daemon
"""

import logging
import os
import signal
import threading
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from agentbridge.bridge.watcher import DirectoryWatcher
from agentbridge.core.configs import DaemonSettings, get_daemon_settings
from agentbridge.core.errors import BridgeError, InvalidRequest, WatcherError
from agentbridge.core.protocol import (
    RequestMessage,
    ResponseMessage,
    deserialize_request,
    serialize_response,
)
from agentbridge.core.transport import TransportLocation
from agentbridge.daemon.extract import SuggestionExtractor
from agentbridge.daemon.lock import ProcessingLock
from agentbridge.daemon.runner import AgentResult, AgentRunner
from agentbridge.utils.fs import atomic_write_bytes

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_path: Optional[Path] = None, level: int = logging.INFO) -> None:
    """
    Configure daemon logging: console plus append-only wrapper.log.

    Only the daemon entry point calls this; library code never adds handlers.
    """
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    logging.getLogger("agentbridge").setLevel(level)
    if log_path is None:
        return

    root = logging.getLogger()
    target = str(log_path.resolve())
    if any(getattr(h, "baseFilename", None) == target for h in root.handlers):
        return
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
    root.addHandler(handler)


class AgentDaemon:
    """
    Processes requests from one transport directory.

    Several AgentDaemon instances (in one or many processes) may watch the
    same directory; the processing lock guarantees that at most one of them
    handles a given request.
    """

    def __init__(
        self,
        location: TransportLocation,
        runner: AgentRunner,
        poll_interval: float = 1.0,
        stale_lock_after: float = 300.0,
        heartbeat_interval: float = 5.0,
    ):
        """
        Initialize daemon.

        Args:
            location: Transport directory paths
            runner: Agent invocation (executable + timeout)
            poll_interval: Longest sleep between request checks in daemon mode
            stale_lock_after: Seconds without heartbeat before a lock is reclaimed
            heartbeat_interval: Seconds between lock heartbeats
        """
        self.location = location
        self.runner = runner
        self.poll_interval = poll_interval
        self.stale_lock_after = stale_lock_after
        self.heartbeat_interval = heartbeat_interval
        self.processed_count = 0
        self._shutdown_event = threading.Event()
        self._watcher: Optional[DirectoryWatcher] = None

    @classmethod
    def from_settings(cls, settings: DaemonSettings) -> "AgentDaemon":
        return cls(
            location=TransportLocation.resolve(settings.transport_dir),
            runner=AgentRunner(settings.agent_path, timeout=settings.agent_timeout),
            poll_interval=settings.poll_interval,
            stale_lock_after=settings.stale_lock_after,
            heartbeat_interval=settings.heartbeat_interval,
        )

    def new_lock(self) -> ProcessingLock:
        return ProcessingLock(
            self.location.lock_path,
            stale_after=self.stale_lock_after,
            heartbeat_interval=self.heartbeat_interval,
        )

    def process_pending(self) -> bool:
        """
        Handle the pending request, if any.

        Returns:
            True if this call produced a response, False if there was no
            request or another daemon holds the lock
        """
        if not self.location.request_path.exists():
            return False

        lock = self.new_lock()
        if not lock.try_acquire():
            logger.debug("Skipping request - already processing")
            return False

        try:
            return self._process_locked()
        finally:
            lock.release()

    def run_once(self) -> bool:
        """Single-shot mode: process at most one pending request."""
        if not self.location.request_path.exists():
            logger.error(f"No request file found: {self.location.request_path}")
            return False
        return self.process_pending()

    def run_forever(self) -> None:
        """Daemon mode: process requests until stop() is called."""
        logger.info("Starting agent daemon")
        logger.info(f"Monitoring directory: {self.location.directory}")

        self._watcher = DirectoryWatcher(
            self.location.directory, names={self.location.request_path.name}
        )
        try:
            self._watcher.start()
        except WatcherError as e:
            logger.warning(f"{e}; polling every {self.poll_interval}s")
            self._watcher = None

        try:
            while not self._shutdown_event.is_set():
                seen = self._watcher.generation if self._watcher else 0
                try:
                    self.process_pending()
                except BridgeError as e:
                    logger.error(f"Request handling failed: {e}")
                if self._shutdown_event.is_set():
                    break
                if self._watcher is not None:
                    self._watcher.wait_for_change(seen, self.poll_interval)
                else:
                    self._shutdown_event.wait(self.poll_interval)
        finally:
            if self._watcher is not None:
                self._watcher.stop()
                self._watcher = None
            logger.info("Daemon stopped")

    def stop(self) -> None:
        """Ask run_forever() to return after the current request."""
        self._shutdown_event.set()
        if self._watcher is not None:
            self._watcher.poke()

    def _process_locked(self) -> bool:
        request_path = self.location.request_path
        try:
            data, identity = _read_with_identity(request_path)
        except FileNotFoundError:
            # Another daemon finished it between our check and the lock
            return False
        except OSError as e:
            logger.error(f"Failed to read request: {e}")
            return False

        logger.info(f"Processing request: {request_path}")
        try:
            request = deserialize_request(data)
        except InvalidRequest as e:
            logger.error(f"Malformed request: {e}")
            response = ResponseMessage(
                response_text=f"Error: the agent could not read the request ({e}).",
            )
        else:
            logger.debug(f"Query: {request.query}")
            response = self.build_response(request, self.runner.run(request))

        try:
            atomic_write_bytes(self.location.response_path, serialize_response(response))
        except OSError as e:
            logger.error(f"Failed to write response: {e}")
            return False
        logger.info(f"Response written to: {self.location.response_path}")
        _remove_if_unchanged(request_path, identity)
        self.processed_count += 1
        logger.info("Request processing complete")
        return True

    @staticmethod
    def build_response(request: RequestMessage, result: AgentResult) -> ResponseMessage:
        """Turn agent output into a ResponseMessage for `request`."""
        if result.timed_out:
            text = "Error: Agent processing timed out"
            if result.output.strip():
                text += f"\n\nPartial output:\n{result.output}"
            suggestions = []
        else:
            text = result.output
            suggestions = SuggestionExtractor.extract(result.output, request.current_file)

        return ResponseMessage(
            response_text=text,
            code_suggestions=suggestions,
            apply_changes=result.ok and bool(suggestions),
            request_id=request.request_id or None,
        )


def _read_with_identity(path: Path) -> Tuple[bytes, Tuple[int, int, int]]:
    """Read a file and remember which file it was (inode, size, mtime)."""
    with open(path, "rb") as f:
        stat = os.fstat(f.fileno())
        data = f.read()
    return data, (stat.st_ino, stat.st_size, stat.st_mtime_ns)


def _remove_if_unchanged(path: Path, identity: Tuple[int, int, int]) -> None:
    """Delete the request only if the host has not replaced it meanwhile."""
    try:
        stat = path.stat()
    except FileNotFoundError:
        return
    if (stat.st_ino, stat.st_size, stat.st_mtime_ns) != identity:
        logger.info("A newer request arrived during processing; leaving it in place")
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def run_daemon(
    transport_dir: Optional[Union[str, Path]] = None,
    agent_path: Optional[Union[str, Sequence[str]]] = None,
    timeout: Optional[float] = None,
    daemon: bool = False,
) -> int:
    """
    Run the agent daemon.

    Args:
        transport_dir: Transport directory (default from config/env)
        agent_path: Agent executable override
        timeout: Per-request agent timeout override (seconds)
        daemon: Loop forever instead of handling one request

    Returns:
        Process exit code
    """
    settings = get_daemon_settings()
    if transport_dir:
        settings.transport_dir = Path(transport_dir).expanduser()
    if agent_path:
        settings.agent_path = agent_path
    if timeout is not None:
        settings.agent_timeout = timeout

    location = TransportLocation.resolve(settings.transport_dir)
    configure_logging(location.log_path)

    logger.info("=== Agent Bridge Daemon ===")
    logger.info(f"Agent directory: {location.directory}")
    logger.info(f"Log file: {location.log_path}")
    logger.info(f"Using agent: {settings.agent_path}")

    server = AgentDaemon.from_settings(settings)

    if not daemon:
        return 0 if server.run_once() else 1

    def _signal_handler(signum, frame) -> None:
        logger.info("Shutting down...")
        server.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _signal_handler)

    server.run_forever()
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Agent Bridge daemon")
    parser.add_argument("--daemon", action="store_true", help="Run continuously")
    parser.add_argument("--agent-path", help="Path to agent executable")
    parser.add_argument("--timeout", type=float, help="Agent timeout in seconds")
    parser.add_argument("--dir", help="Transport directory")

    args = parser.parse_args()

    raise SystemExit(
        run_daemon(
            transport_dir=args.dir,
            agent_path=args.agent_path,
            timeout=args.timeout,
            daemon=args.daemon,
        )
    )
