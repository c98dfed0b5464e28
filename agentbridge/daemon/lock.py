"""Advisory processing lock shared by competing daemon processes.

The lock is the `.processing` file in the transport directory. It is
created with O_CREAT | O_EXCL, so when several daemons race for the same
request exactly one of them succeeds. The file holds a small JSON owner
record and its mtime is refreshed by a heartbeat thread while the owner is
alive, which lets a later daemon recognise (and reclaim) a lock left behind
by a crashed process.

Creating, reclaiming, refreshing and deleting the lock all happen under an
flock on `.processing.guard`. The kernel releases that lock when its holder
dies, so the guard itself never goes stale.

Lock file format:
    {
        "owner": "host:pid:token",
        "pid": int,
        "hostname": str,
        "acquired_at": "<RFC3339>"
    }
"""

import json
import logging
import os
import socket
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from agentbridge.core.protocol import format_timestamp, now_utc
from agentbridge.utils.fs import exclusive_lockfile

logger = logging.getLogger(__name__)

GUARD_SUFFIX = ".guard"


def read_lock_info(path: Path) -> Optional[Dict[str, Any]]:
    """
    Read the owner record of a lock file.

    Returns:
        Owner dict plus 'age_seconds' (time since last heartbeat), or None
        if there is no lock. A lock with an unreadable record still reports
        its age with owner None.
    """
    try:
        stat = path.stat()
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.debug(f"Cannot read lock {path}: {e}")
        return {"owner": None, "age_seconds": 0.0}

    try:
        info = json.loads(raw) if raw.strip() else {}
        if not isinstance(info, dict):
            info = {}
    except json.JSONDecodeError:
        info = {}

    info.setdefault("owner", None)
    info["age_seconds"] = max(0.0, time.time() - stat.st_mtime)
    return info


class ProcessingLock:
    """
    Exclusive, liveness-checked lock on a single file.

    Every step that creates, reclaims, refreshes or deletes the lock file
    runs under an OS-level lock on a sibling guard file
    (`.processing.guard`). A stale lock is therefore judged and replaced
    in one step, and nobody can slip a new lock in between.

    Args:
        path: Lock file path
        stale_after: Seconds without heartbeat after which the lock is reclaimable
        heartbeat_interval: Seconds between mtime refreshes while held
    """

    def __init__(self, path: Path, stale_after: float = 300.0, heartbeat_interval: float = 5.0):
        self.path = Path(path)
        self.guard_path = self.path.with_name(self.path.name + GUARD_SUFFIX)
        self.stale_after = stale_after
        self.heartbeat_interval = heartbeat_interval
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._held = False
        self._stop_heartbeat = threading.Event()
        self._heartbeat: Optional[threading.Thread] = None

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        """
        Acquire the lock without waiting for another holder.

        Returns:
            True if this instance now holds the lock, False if another
            live holder has it
        """
        if self._held:
            return True

        with exclusive_lockfile(self.guard_path):
            if not self._create():
                judged = read_lock_info(self.path)
                if judged is not None and judged["age_seconds"] <= self.stale_after:
                    return False
                self._discard_stale(judged)
                if not self._create():
                    return False

        self._held = True
        self._start_heartbeat()
        logger.debug(f"Lock acquired by {self.owner}")
        return True

    def release(self) -> None:
        """Stop the heartbeat and delete the lock file if it is still ours."""
        if not self._held:
            return
        self._held = False
        self._stop_heartbeat.set()
        if self._heartbeat is not None:
            self._heartbeat.join(timeout=self.heartbeat_interval + 1.0)
            self._heartbeat = None

        with exclusive_lockfile(self.guard_path):
            info = read_lock_info(self.path)
            if info is None:
                logger.warning(f"Lock {self.path} vanished before release")
                return
            if info.get("owner") != self.owner:
                logger.warning(f"Lock {self.path} now owned by {info.get('owner')}; leaving it")
                return
            self.path.unlink(missing_ok=True)
        logger.debug(f"Lock released by {self.owner}")

    def is_stale(self) -> bool:
        """True if a lock exists and its heartbeat is older than stale_after."""
        info = read_lock_info(self.path)
        return info is not None and info["age_seconds"] > self.stale_after

    def __enter__(self) -> "ProcessingLock":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def _create(self) -> bool:
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False

        record = {
            "owner": self.owner,
            "pid": os.getpid(),
            "hostname": socket.gethostname(),
            "acquired_at": format_timestamp(now_utc()),
        }
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(record, f)
        return True

    def _discard_stale(self, judged: Optional[Dict[str, Any]]) -> None:
        """Delete a lock judged stale. Caller holds the guard."""
        self.path.unlink(missing_ok=True)
        if judged is not None:
            logger.warning(
                f"Reclaimed stale lock from {judged.get('owner')} "
                f"(no heartbeat for {judged['age_seconds']:.0f}s)"
            )

    def _start_heartbeat(self) -> None:
        if self.heartbeat_interval <= 0:
            return
        self._stop_heartbeat = threading.Event()
        self._heartbeat = threading.Thread(
            target=self._beat, name="agentbridge-lock-heartbeat", daemon=True
        )
        self._heartbeat.start()

    def _beat(self) -> None:
        while not self._stop_heartbeat.wait(self.heartbeat_interval):
            try:
                with exclusive_lockfile(self.guard_path):
                    info = read_lock_info(self.path)
                    if info is None or info.get("owner") != self.owner:
                        owner = info.get("owner") if info else None
                        logger.warning(
                            f"Lock {self.path} lost (now owned by {owner}); heartbeat stopped"
                        )
                        return
                    os.utime(self.path)
            except OSError as e:
                logger.warning(f"Lock heartbeat failed: {e}")
