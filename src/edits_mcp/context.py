"""Shared context types for MCP server.

This module contains context types used across server and tools modules,
separated to avoid circular imports.
"""

from dataclasses import dataclass, field
from pathlib import Path

from mcp.server.fastmcp import Context
from mcp.server.session import ServerSession

from .engine import ChangeLedger, EditPipeline, PipelineConfig


@dataclass
class AppContext:
    """Application context containing shared resources for MCP tools.

    Created during server startup and made available to all tools via the
    Context parameter. The ledger spans calls so that ``start_turn`` and
    ``apply_response`` made in separate requests act on the same turn.
    """

    config: PipelineConfig
    ledger: ChangeLedger = field(default_factory=ChangeLedger)

    def create_pipeline(self, project_root: str | Path) -> EditPipeline:
        """Create a pipeline for one request, sharing the config and ledger."""
        return EditPipeline(project_root, config=self.config, ledger=self.ledger)


# Type alias for MCP tool context parameter
AppContextType = Context[ServerSession, AppContext]


__all__ = ["AppContext", "AppContextType"]
