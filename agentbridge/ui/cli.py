"""Main CLI entry point - host commands plus the daemon runner."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape

from agentbridge.bridge.client import Bridge
from agentbridge.core.configs import get_bridge_settings
from agentbridge.core.errors import BridgeError, InvalidResponse, ResponseTimeout
from agentbridge.core.protocol import RequestMessage
from agentbridge.ui.output import err_console, render_response, render_status

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Agent Bridge - file-based IPC between an editor and an AI agent.",
)


# ============================================================================
# Shared Setup
# ============================================================================

def _open_bridge(transport_dir: Optional[Path]) -> Bridge:
    """Load settings and open the bridge. Exits on error."""
    try:
        settings = get_bridge_settings()
        return Bridge.open(
            transport_dir or settings.transport_dir,
            response_timeout=settings.response_timeout,
            poll_interval=settings.poll_interval,
        )
    except (BridgeError, ValueError) as e:
        err_console.print(f"[red]Error opening transport directory: {escape(str(e))}[/red]")
        raise typer.Exit(1)


DirOption = typer.Option(None, "--dir", help="Transport directory (default: ~/.agentbridge/agent)")


# ============================================================================
# Commands
# ============================================================================

@app.command()
def ask(
    query: str = typer.Argument(..., help="Question for the agent"),
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Workspace root"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Current file to send with its code"),
    extra_files: List[str] = typer.Option([], "--with", help="Additional workspace file names"),
    include_source: Optional[Path] = typer.Option(
        None, "--include-source", help="Source tree to send as ide_source"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Seconds to wait"),
    transport_dir: Optional[Path] = DirOption,
) -> None:
    """
    Send a query and wait for the agent's answer.

    Example: agentbridge ask "What is Rust?" --workspace .
    """
    bridge = _open_bridge(transport_dir)

    request = RequestMessage.create(query).with_workspace(str((workspace or Path.cwd()).resolve()))
    if extra_files:
        request = request.with_files(extra_files)
    if file is not None:
        try:
            request = request.with_current_file(str(file), file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            err_console.print(f"[red]Cannot read {escape(str(file))}: {escape(str(e))}[/red]")
            raise typer.Exit(1)
    if include_source is not None:
        # Lazy import: only needed when sending the source tree
        from agentbridge.context.sources.self_source import SelfSourceCollector

        try:
            request = request.with_ide_source(SelfSourceCollector(include_source)())
        except BridgeError as e:
            err_console.print(f"[red]{escape(str(e))}[/red]")
            raise typer.Exit(1)

    try:
        with bridge:
            bridge.send_request(request)
            response = bridge.wait_for_response(timeout)
    except ResponseTimeout:
        err_console.print("[red]Error: agent did not respond in time[/red]")
        raise typer.Exit(1)
    except InvalidResponse:
        err_console.print("[red]Error: agent returned malformed output[/red]")
        raise typer.Exit(1)
    except BridgeError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    render_response(response)


@app.command()
def check(transport_dir: Optional[Path] = DirOption) -> None:
    """Print the current response without waiting (exit 2 if none)."""
    bridge = _open_bridge(transport_dir)
    try:
        response = bridge.check_response()
    except BridgeError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    if response is None:
        err_console.print("No response available")
        raise typer.Exit(2)
    render_response(response)


@app.command()
def clear(transport_dir: Optional[Path] = DirOption) -> None:
    """Delete any pending request and response."""
    bridge = _open_bridge(transport_dir)
    try:
        bridge.clear()
    except BridgeError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    typer.echo("Cleared.")


@app.command()
def status(transport_dir: Optional[Path] = DirOption) -> None:
    """Show which transport files exist and who holds the lock."""
    bridge = _open_bridge(transport_dir)
    render_status(bridge.status())


@app.command()
def daemon(
    daemon_mode: bool = typer.Option(
        False, "--daemon/--once", help="Run continuously or handle one pending request"
    ),
    agent_path: Optional[str] = typer.Option(None, "--agent-path", help="Agent executable"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Agent timeout in seconds"),
    transport_dir: Optional[Path] = DirOption,
) -> None:
    """
    Run the agent daemon that answers requests.

    Lazy import keeps host commands free of daemon setup.
    """
    from agentbridge.daemon.server import run_daemon

    try:
        code = run_daemon(
            transport_dir=transport_dir,
            agent_path=agent_path,
            timeout=timeout,
            daemon=daemon_mode,
        )
    except (BridgeError, ValueError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    raise typer.Exit(code)


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
