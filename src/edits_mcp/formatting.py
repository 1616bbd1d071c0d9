"""Shared formatting utilities for MCP tool responses.

- Markdown format: Human-readable with headers, lists, and formatting
- JSON format: Machine-readable structured data (pydantic ``model_dump``)
"""

from typing import Any

from .engine import ApplyOutcome, ChangeKind, ReconciledChange, TurnResult

# =============================================================================
# Markdown Formatting Utilities
# =============================================================================


def format_outcome_markdown(outcome: ApplyOutcome) -> str:
    """Format an ApplyOutcome as markdown, one section per non-empty bucket."""
    if not outcome.all_paths():
        return "No files were written."

    lines: list[str] = []
    for title, paths in (
        ("Created", outcome.created),
        ("Modified", outcome.modified),
        ("Ignored", outcome.ignored),
        ("Invalid", outcome.invalid),
    ):
        if not paths:
            continue
        lines.append(f"### {title} ({len(paths)})")
        for path in paths:
            reason = outcome.reasons.get(path)
            lines.append(f"- `{path}`" + (f": {reason}" if reason else ""))
        lines.append("")
    return "\n".join(lines).rstrip()


def format_changes_markdown(changes: list[ReconciledChange] | tuple[ReconciledChange, ...]) -> str:
    """Format ledger changes as markdown; patches are shown as diff blocks."""
    if not changes:
        return "No changes recorded for this turn."

    lines = [f"## Changes ({len(changes)})", ""]
    for change in changes:
        if change.kind == ChangeKind.PATCH:
            lines.append(f"### `{change.path}` (patch)")
            lines.append("```diff")
            lines.append(change.content.rstrip("\n"))
            lines.append("```")
        else:
            line_count = change.content.count("\n") + (0 if change.content.endswith("\n") else 1)
            lines.append(f"### `{change.path}` (full file, {line_count} lines)")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_turn_result_markdown(result: TurnResult) -> str:
    """Format a TurnResult as markdown."""
    lines = ["# Turn Result", ""]
    if result.terminated_early:
        lines.append("_Scanning stopped after the first edit._")
        lines.append("")

    lines.append("## Outcome")
    lines.append(format_outcome_markdown(result.outcome))

    if result.unchanged:
        lines.append("")
        lines.append("## Unchanged")
        lines.extend(f"- `{path}`" for path in result.unchanged)

    if result.failures:
        lines.append("")
        lines.append("## Reconciliation Failures")
        lines.extend(f"- `{path}`: {error}" for path, error in result.failures.items())

    if result.incomplete_tags:
        lines.append("")
        lines.append("## Incomplete Edits")
        lines.extend(f"- `{label}` (stream ended before the close tag)" for label in result.incomplete_tags)

    return "\n".join(lines)


# =============================================================================
# JSON Formatting Utilities
# =============================================================================


def format_turn_result_json(result: TurnResult) -> dict[str, Any]:
    """Turn result as a JSON-compatible dict (plain text omitted)."""
    data = result.model_dump(mode="json", exclude={"text"})
    data["status"] = "success" if result.outcome.success and not result.failures else "failure"
    return data


def format_changes_json(
    changes: list[ReconciledChange] | tuple[ReconciledChange, ...],
) -> list[dict[str, Any]]:
    return [change.model_dump(mode="json") for change in changes]
