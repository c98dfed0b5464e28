"""Location of the transport directory and the files inside it.

Layout:
    request.json   written by the host, deleted by the daemon
    response.json  written by the daemon, deleted by the host via clear()
    .processing    lock artifact held by the daemon while processing
    .processing.guard  flock target serialising changes to .processing
    wrapper.log    append-only daemon diagnostics
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from agentbridge.core.errors import BridgeIOError

REQUEST_FILE = "request.json"
RESPONSE_FILE = "response.json"
LOCK_FILE = ".processing"
LOG_FILE = "wrapper.log"


def default_transport_dir() -> Path:
    """Get default transport directory (AGENTBRIDGE_DIR wins over ~/.agentbridge/agent)."""
    env = os.environ.get("AGENTBRIDGE_DIR", "").strip()
    if env:
        return Path(env).expanduser()
    return Path.home() / ".agentbridge" / "agent"


@dataclass(frozen=True)
class TransportLocation:
    """Paths of the protocol artifacts inside one transport directory."""

    directory: Path

    @property
    def request_path(self) -> Path:
        return self.directory / REQUEST_FILE

    @property
    def response_path(self) -> Path:
        return self.directory / RESPONSE_FILE

    @property
    def lock_path(self) -> Path:
        return self.directory / LOCK_FILE

    @property
    def log_path(self) -> Path:
        return self.directory / LOG_FILE

    @classmethod
    def resolve(cls, directory: Optional[Union[str, Path]] = None) -> "TransportLocation":
        """
        Resolve and create the transport directory.

        Args:
            directory: Explicit directory (default: default_transport_dir())

        Returns:
            TransportLocation for an existing, writable directory

        Raises:
            BridgeIOError: If the directory cannot be created or is not writable
        """
        path = Path(directory).expanduser() if directory else default_transport_dir()
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BridgeIOError(f"Cannot create transport directory {path}: {e}") from e

        if not path.is_dir():
            raise BridgeIOError(f"Transport path is not a directory: {path}")
        if not os.access(path, os.W_OK | os.X_OK):
            raise BridgeIOError(f"Transport directory is not writable: {path}")

        return cls(directory=path)
