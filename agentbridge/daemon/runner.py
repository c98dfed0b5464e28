"""Agent invocation - runs the external agent executable as a subprocess.

The agent is opaque: it receives a prompt via `-p <prompt>` and answers
with free text on stdout. Stderr is merged into the captured output.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from agentbridge.core.protocol import RequestMessage

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


@dataclass
class AgentResult:
    """Outcome of one agent invocation."""
    output: str
    exit_code: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


def build_prompt(request: RequestMessage) -> str:
    """
    Build the prompt text handed to the agent.

    The current file and its code are prepended as context when present;
    otherwise the query is passed through unchanged.
    """
    if not request.current_file:
        return request.query

    return (
        f"Context: Working on file {request.current_file}\n\n"
        f"Current code:\n{request.current_code or ''}\n\n"
        f"Task: {request.query}"
    )


class AgentRunner:
    """
    Runs the agent executable with a bounded timeout.

    Args:
        agent_path: Executable, optionally with leading arguments
            (e.g. "python stub_agent.py"); a list is used verbatim
        timeout: Seconds before the agent is killed
    """

    def __init__(self, agent_path: Union[str, Sequence[str]], timeout: float = 120.0):
        self.agent_path = agent_path
        self.timeout = timeout

    @property
    def argv(self) -> List[str]:
        if isinstance(self.agent_path, str):
            return shlex.split(self.agent_path)
        return list(self.agent_path)

    def run(self, request: RequestMessage) -> AgentResult:
        """Invoke the agent for one request. Never raises for agent failures."""
        args = self.argv + ["-p", build_prompt(request)]
        cwd = _workspace_dir(request.workspace_path)

        logger.info(f"Running agent (timeout: {self.timeout:.0f}s)...")
        try:
            completed = subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Agent timed out after {self.timeout:.0f}s")
            partial = _decode(e.output)
            return AgentResult(output=partial, exit_code=TIMEOUT_EXIT_CODE, timed_out=True)
        except FileNotFoundError:
            logger.error(f"Agent not found: {args[0] if args else self.agent_path}")
            return AgentResult(
                output=f"Agent executable not found: {args[0] if args else self.agent_path}",
                exit_code=NOT_FOUND_EXIT_CODE,
            )
        except OSError as e:
            logger.error(f"Failed to start agent: {e}")
            return AgentResult(output=f"Failed to start agent: {e}", exit_code=1)

        if completed.returncode == 0:
            logger.info("Agent completed successfully")
        else:
            logger.error(f"Agent failed with exit code: {completed.returncode}")
        return AgentResult(output=_decode(completed.stdout), exit_code=completed.returncode)


def _workspace_dir(workspace_path: str) -> Optional[Path]:
    if not workspace_path:
        return None
    path = Path(workspace_path).expanduser()
    if path.is_dir():
        return path
    logger.warning(f"Workspace does not exist, running agent in daemon cwd: {workspace_path}")
    return None


def _decode(data: Optional[Union[bytes, str]]) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")
