"""Request context building.

This module provides the context sources that hosts inject into a
RequestMessage.
"""

# Re-exports from sources/ (advanced usage)
from agentbridge.context.sources.self_source import (
    SelfSourceCollector,
    SourceProvider,
    StaticSourceProvider,
    collect_self_source,
)

__all__ = [
    "SelfSourceCollector",
    "SourceProvider",
    "StaticSourceProvider",
    "collect_self_source",
]
