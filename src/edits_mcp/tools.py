"""MCP tool implementations for edit reconciliation.

This module contains all MCP tool function implementations that expose the
edit-reconciliation pipeline via the MCP protocol.

Following official Anthropic MCP Python SDK patterns:
- Tool functions decorated with @mcp.tool()
- Flat parameter signatures with Annotated types for validation
- Type hints for automatic schema generation
- Async functions for all tools
- Clear docstrings (become tool descriptions)
"""

import asyncio
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated, Any, Literal

from mcp.types import ToolAnnotations
from pydantic import Field

from .context import AppContextType
from .engine import EditRecord, ReconcileError
from .engine.pipeline import edit_body
from .engine.textdiff import compute_stats
from .formatting import (
    format_changes_json,
    format_changes_markdown,
    format_outcome_markdown,
    format_turn_result_json,
    format_turn_result_markdown,
)
from .server import mcp


def _chunked(text: str, size: int) -> Iterator[str]:
    for start in range(0, len(text), size):
        yield text[start : start + size]


def _project_root_error(project_root: str) -> dict[str, Any] | None:
    root = Path(project_root).expanduser()
    if not root.is_dir():
        return {
            "status": "failure",
            "error": f"Project root is not a directory: {project_root}",
        }
    return None


# =============================================================================
# MCP Tools (following official SDK decorator pattern)
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="Start Turn",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,  # A second call before any output clears only once
        openWorldHint=False,
    )
)
async def start_turn(
    turn_id: Annotated[
        str | None,
        Field(description="Optional identifier of the user-input turn", max_length=200),
    ] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Begin a new user-input turn. The change list resets on the turn's first output."""
    app_ctx = ctx.request_context.lifespan_context
    app_ctx.ledger.start_turn(turn_id)
    return {"status": "success", "turn_id": turn_id}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Apply Model Response",
        readOnlyHint=False,
        destructiveHint=True,  # Overwrites files under project_root
        idempotentHint=False,
        openWorldHint=False,
    )
)
async def apply_response(
    response: Annotated[
        str,
        Field(description="Model output containing <write_file path=\"...\"> edit blocks"),
    ],
    project_root: Annotated[
        str,
        Field(description="Absolute path of the project the edits apply to", min_length=1),
    ],
    stop_after_first_edit: Annotated[
        bool,
        Field(description="Stop scanning once the first edit block is complete"),
    ] = False,
    chunk_size: Annotated[
        int,
        Field(description="Characters per chunk fed to the stream scanner", ge=1, le=1_048_576),
    ] = 4096,
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Reconcile and apply every edit block in a model response. Required: response, project_root."""
    error = _project_root_error(project_root)
    if error:
        return error

    app_ctx = ctx.request_context.lifespan_context
    pipeline = app_ctx.create_pipeline(Path(project_root).expanduser())

    result = await pipeline.process_stream(
        _chunked(response, chunk_size),
        stop_after_first_edit=stop_after_first_edit,
    )

    if format == "markdown":
        return format_turn_result_markdown(result)
    return format_turn_result_json(result)


@mcp.tool(
    annotations=ToolAnnotations(
        title="Reconcile Edit",
        readOnlyHint=False,
        destructiveHint=True,  # Only when apply=True
        idempotentHint=False,
        openWorldHint=False,
    )
)
async def reconcile_edit(
    path: Annotated[
        str,
        Field(description="File path relative to project_root", min_length=1, max_length=4096),
    ],
    content: Annotated[
        str,
        Field(
            description=(
                "Edit body: new file content (may use '// ... existing code ...' markers), "
                "a unified diff, or SEARCH/REPLACE blocks"
            )
        ),
    ],
    project_root: Annotated[
        str,
        Field(description="Absolute path of the project", min_length=1),
    ],
    apply: Annotated[
        bool,
        Field(description="Write the result to disk (otherwise preview only)"),
    ] = False,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Reconcile one edit against the file on disk. Required: path, content, project_root."""
    error = _project_root_error(project_root)
    if error:
        return error

    app_ctx = ctx.request_context.lifespan_context
    pipeline = app_ctx.create_pipeline(Path(project_root).expanduser())

    old_content = await asyncio.to_thread(pipeline.read_old_content, path)
    record = EditRecord(file_path=path, old_content=old_content, raw_new_representation=edit_body(content))
    try:
        change, expanded = pipeline.expand_and_choose(record)
    except ReconcileError as e:
        return {"status": "failure", "path": path, "error": str(e)}

    response: dict[str, Any] = {
        "status": "success",
        "path": path,
        "kind": change.kind.value,
        "content": change.content,
        "unchanged": change.is_noop(old_content),
        "is_new_file": old_content is None,
    }
    if old_content is not None:
        response["stats"] = compute_stats(old_content, expanded)

    if apply and not response["unchanged"]:
        app_ctx.ledger.record_change(change)
        outcome = await pipeline.applier.apply(pipeline.project_root, [change])
        response["outcome"] = outcome.model_dump(mode="json")
        response["summary"] = format_outcome_markdown(outcome)
        if not outcome.success:
            response["status"] = "failure"

    return response


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Turn Changes",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def get_turn_changes(
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """List the changes recorded during the current turn. Optional: format (json|markdown)."""
    app_ctx = ctx.request_context.lifespan_context
    changes = app_ctx.ledger.get_changes()

    if format == "markdown":
        return format_changes_markdown(changes)
    return {
        "turn_id": app_ctx.ledger.turn_id,
        "count": len(changes),
        "changes": format_changes_json(changes),
    }
