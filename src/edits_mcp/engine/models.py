"""
Pydantic models for the data passed between pipeline stages.

- EditRecord: raw edit captured from one tag (input of the expander)
- ReconciledChange: final change in full-file or patch form (input of the applier)
- ApplyOutcome: per-path classification returned by the applier
- TurnResult: everything one pass over a model response produced
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, computed_field


class ChangeKind(str, Enum):
    """How a reconciled change is shipped to the applier."""

    FULL_FILE = "file"
    PATCH = "patch"


class EditRecord(BaseModel):
    """Edit captured from one tag, before reconciliation."""

    file_path: str = Field(description="Project-relative path named by the tag")
    old_content: str | None = Field(
        default=None,
        description="Content of the file before the edit (None for new files)",
    )
    raw_new_representation: str = Field(
        description="Tag body: full or abbreviated file, unified diff, or SEARCH/REPLACE blocks"
    )


class ReconciledChange(BaseModel):
    """A change ready to apply.

    ``content`` is the complete new file for ``FULL_FILE`` and a unified diff
    against the old content for ``PATCH``. Both kinds yield the same final text.
    """

    model_config = {"frozen": True}

    path: str = Field(description="Project-relative file path")
    kind: ChangeKind = Field(description="Full-file replacement or unified diff")
    content: str = Field(description="New file content or patch text")

    def is_noop(self, old_content: str | None) -> bool:
        """True when applying this change would leave ``old_content`` unchanged."""
        return (
            old_content is not None
            and self.kind == ChangeKind.FULL_FILE
            and self.content == old_content
        )


class ApplyOutcome(BaseModel):
    """Partition of the applied paths into four disjoint buckets."""

    created: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    ignored: list[str] = Field(default_factory=list)
    invalid: list[str] = Field(default_factory=list)
    reasons: dict[str, str] = Field(
        default_factory=dict,
        description="Why a path landed in ignored or invalid",
    )

    def all_paths(self) -> list[str]:
        return [*self.created, *self.modified, *self.ignored, *self.invalid]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        """True when no path was classified invalid."""
        return not self.invalid


class TurnResult(BaseModel):
    """Result of running the pipeline over one model response."""

    text: str = Field(default="", description="Plain text outside edit tags")
    changes: list[ReconciledChange] = Field(default_factory=list)
    unchanged: list[str] = Field(
        default_factory=list,
        description="Paths whose reconciled content equals the current content",
    )
    failures: dict[str, str] = Field(
        default_factory=dict,
        description="Paths whose edit could not be reconciled, with the reason",
    )
    incomplete_tags: list[str] = Field(
        default_factory=list,
        description="Tags still open at end of stream (by path, or tag name if no path)",
    )
    outcome: ApplyOutcome = Field(default_factory=ApplyOutcome)
    terminated_early: bool = False
