"""
Rich rendering of agent responses and bridge status.
"""

from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from agentbridge.core.protocol import ResponseMessage

console = Console()
err_console = Console(stderr=True)


def render_response(response: ResponseMessage, target: Optional[Console] = None) -> None:
    """Print the answer text followed by one panel per code suggestion."""
    out = target or console
    text = response.response_text.rstrip()
    # Agent output is plain text, never Rich markup
    out.print(Text(text) if text else "[dim](empty response)[/dim]")

    for suggestion in response.code_suggestions:
        title = escape(f"{suggestion.file} [{suggestion.language}]")
        out.print(
            Panel(
                Syntax(suggestion.code.rstrip("\n"), suggestion.language or "text", word_wrap=True),
                title=title,
                subtitle=escape(suggestion.description),
            )
        )

    if response.apply_changes:
        out.print("[green]Agent marked these changes as ready to apply.[/green]")


def render_status(status: Dict[str, Any], target: Optional[Console] = None) -> None:
    """Print the transport directory state as a table."""
    out = target or console
    table = Table(title="Agent Bridge", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Transport dir", escape(status["transport_dir"]))
    table.add_row("Request pending", _yes_no(status["request_pending"]))
    table.add_row("Response ready", _yes_no(status["response_ready"]))
    table.add_row("Processing", _yes_no(status["processing"]))

    owner = status.get("lock_owner")
    if owner:
        table.add_row("Lock owner", escape(str(owner.get("owner") or "unknown")))
        table.add_row("Lock heartbeat age", f"{owner.get('age_seconds', 0.0):.0f}s")

    out.print(table)


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"
