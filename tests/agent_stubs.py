"""Helpers that create throwaway agent executables for tests.

A stub agent is a small Python script run with the current interpreter. It
receives the same arguments as a real agent (`-p <prompt>`).
"""

import shlex
import sys
import textwrap
from pathlib import Path


def write_stub_agent(directory: Path, body: str, name: str = "stub_agent.py") -> str:
    """
    Write a stub agent script and return an agent_path string for AgentRunner.

    The body can use `prompt` (the -p argument) and the modules sys, os, time.
    """
    script = Path(directory) / name
    header = "import os\nimport sys\nimport time\n\nprompt = sys.argv[2] if len(sys.argv) > 2 else ''\n\n"
    script.write_text(header + textwrap.dedent(body), encoding="utf-8")
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


RUST_ANSWER = (
    "Here is a minimal Rust program:\n"
    "```rust\n"
    "fn main() {\n"
    '    println!("Hello, world!");\n'
    "}\n"
    "```\n"
    "Run it with cargo run.\n"
)
