"""Small filesystem helpers shared by the host and the daemon."""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Write data to path so readers never observe a partial file.

    The temp file lives in the same directory so os.replace() is a rename
    on one filesystem. A watcher sees this as a create/move of `path`.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix="." + path.name + ".", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


def remove_if_exists(path: Path) -> bool:
    """Delete path, returning True if a file was removed."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def read_bytes_if_exists(path: Path):
    """Return file contents, or None if the file does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


@contextmanager
def exclusive_lockfile(path: Path) -> Iterator[None]:
    """
    Hold an OS-level exclusive lock on `path` for the duration of the block.

    The lock is tied to the open file, so the kernel drops it when the
    holder exits or crashes. The file itself is never deleted.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a+b") as f:
        if os.name == "nt":
            import msvcrt  # Windows only

            f.seek(0)
            msvcrt.locking(f.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                f.seek(0)
                msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            import fcntl  # POSIX only

            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
