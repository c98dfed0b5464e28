"""Self-source context - the host's own source tree as request context.

Reading the host's source into every request is environment state, so it
is exposed as an explicit SourceProvider that callers inject when building
a RequestMessage (and tests replace with StaticSourceProvider).

Output format:
    # ===== File: pkg/module.py =====
    <file contents>

Files are visited in sorted order, so the same tree always yields the same
string.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol, Tuple, Union

from agentbridge.core.errors import BridgeIOError

logger = logging.getLogger(__name__)

DEFAULT_SUFFIXES: Tuple[str, ...] = (".py",)
SKIP_DIRS = {"__pycache__", ".git", ".venv", "venv", "node_modules", ".mypy_cache", ".pytest_cache"}
BOUNDARY = "# ===== File: {path} ====="


class SourceProvider(Protocol):
    """Anything that can produce the ide_source string on demand."""

    def __call__(self) -> str:
        ...


class StaticSourceProvider:
    """Returns a fixed string (useful for tests and for hosts without sources)."""

    def __init__(self, source: str = ""):
        self.source = source

    def __call__(self) -> str:
        return self.source


class SelfSourceCollector:
    """
    Concatenates every source file under a root directory.

    Symlinks are followed only when their target stays inside the root.
    Unreadable files are skipped with a warning.

    Args:
        root: Directory to walk
        suffixes: File suffixes to include (default: .py)
    """

    def __init__(self, root: Union[str, Path], suffixes: Optional[Iterable[str]] = None):
        self.root = Path(root)
        self.suffixes = tuple(suffixes) if suffixes else DEFAULT_SUFFIXES

    def __call__(self) -> str:
        return self.collect()

    def collect(self) -> str:
        """
        Read the source tree into one string.

        Raises:
            BridgeIOError: If root does not exist or is not a directory
        """
        if not self.root.is_dir():
            raise BridgeIOError(f"Source root is not a directory: {self.root}")

        real_root = self.root.resolve()
        parts = []
        for path in self._iter_files(real_root):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable source file {path}: {e}")
                continue
            relative = path.relative_to(real_root).as_posix()
            parts.append(BOUNDARY.format(path=relative))
            parts.append(content if content.endswith("\n") else content + "\n")

        return "\n".join(parts)

    def _iter_files(self, real_root: Path) -> Iterator[Path]:
        """Yield matching files, depth-first in sorted order."""
        stack = [real_root]
        while stack:
            directory = stack.pop()
            try:
                entries = sorted(os.scandir(directory), key=lambda e: e.name, reverse=True)
            except OSError as e:
                logger.warning(f"Skipping unreadable directory {directory}: {e}")
                continue

            files = []
            for entry in entries:
                path = Path(entry.path)
                if entry.is_symlink() and not _inside(path.resolve(), real_root):
                    logger.warning(f"Skipping symlink outside source root: {path}")
                    continue
                try:
                    if entry.is_dir():
                        if entry.name not in SKIP_DIRS and not entry.is_symlink():
                            stack.append(path)
                    elif entry.is_file() and path.suffix in self.suffixes:
                        files.append(path)
                except OSError as e:
                    logger.warning(f"Skipping {path}: {e}")

            # entries were reversed for the stack; restore order for files
            yield from reversed(files)


def _inside(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def collect_self_source(root: Union[str, Path], suffixes: Optional[Iterable[str]] = None) -> str:
    """Collect the source tree under `root` into one string."""
    return SelfSourceCollector(root, suffixes).collect()
