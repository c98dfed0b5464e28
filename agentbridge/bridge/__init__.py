"""Host side of the file-based agent bridge.

Architecture:
- RequestWriter: atomically writes request.json after discarding a stale response
- ResponseWatcher: watchdog notifications as re-check hints, bounded polling as truth
- Bridge: thread-safe facade used by host code
"""

from agentbridge.bridge.client import Bridge, open_bridge
from agentbridge.bridge.watcher import DirectoryWatcher, ResponseWatcher
from agentbridge.bridge.writer import RequestWriter

__all__ = [
    "Bridge",
    "DirectoryWatcher",
    "RequestWriter",
    "ResponseWatcher",
    "open_bridge",
]
