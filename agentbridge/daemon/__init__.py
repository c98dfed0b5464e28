"""Daemon side of the file-based agent bridge.

Architecture:
- ProcessingLock: atomic create-if-absent lock with owner id and heartbeat
- AgentRunner: runs the external agent as a subprocess with a timeout
- SuggestionExtractor: fenced code blocks -> CodeSuggestion (heuristic)
- AgentDaemon: watch for request.json, lock, process, respond, unlock
"""

from agentbridge.daemon.extract import SuggestionExtractor, extract_code_suggestions
from agentbridge.daemon.lock import ProcessingLock, read_lock_info
from agentbridge.daemon.runner import AgentResult, AgentRunner, build_prompt
from agentbridge.daemon.server import AgentDaemon, run_daemon

__all__ = [
    "AgentDaemon",
    "AgentResult",
    "AgentRunner",
    "ProcessingLock",
    "SuggestionExtractor",
    "build_prompt",
    "extract_code_suggestions",
    "read_lock_info",
    "run_daemon",
]
