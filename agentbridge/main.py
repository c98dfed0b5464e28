#!/usr/bin/env python3
"""
Main entry point for the Typer-based Agent Bridge CLI.

This delegates to the UI layer in agentbridge.ui.cli to keep the
console script mapping stable.
"""

from agentbridge.ui.cli import run as agentbridge


if __name__ == "__main__":
    agentbridge()
