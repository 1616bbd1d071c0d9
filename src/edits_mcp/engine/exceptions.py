"""Exception hierarchy for the edit-reconciliation pipeline.

Exception Hierarchy:
    EditError (base)
    ├── TagRegistryError (invalid or duplicate tag registration)
    ├── StreamError
    │   └── IncompleteTagError (tag still open at end of stream)
    ├── ReconcileError (edit body cannot be turned into final content)
    │   ├── ElisionError (elided region cannot be anchored)
    │   ├── SearchReplaceError (SEARCH block missing or ambiguous)
    │   └── PatchFormatError (unparseable unified diff)
    ├── PatchApplyError (diff does not match the content it is applied to)
    └── InvalidPathError (malformed path or path outside the project root)

Per-file failures are isolated: the pipeline records ReconcileError per path,
and the applier maps PatchApplyError / InvalidPathError to ``invalid``.
"""

from __future__ import annotations


class EditError(Exception):
    """Base exception for all edit pipeline errors."""

    pass


class TagRegistryError(EditError):
    """Raised when a tag registry is built from an invalid descriptor set."""

    def __init__(self, tag_name: str, reason: str) -> None:
        self.tag_name = tag_name
        self.reason = reason
        super().__init__(f"Invalid tag '{tag_name}': {reason}")


class StreamError(EditError):
    """Base class for malformed model output streams."""

    pass


class IncompleteTagError(StreamError):
    """
    A registered tag was still open when the stream ended.

    Attributes:
        tag_name: Name of the unterminated tag
        content: Body received before end of stream
        attributes: Parsed attributes of the open tag
    """

    def __init__(self, tag_name: str, content: str, attributes: dict[str, str]) -> None:
        self.tag_name = tag_name
        self.content = content
        self.attributes = attributes
        super().__init__(
            f"Stream ended inside <{tag_name}> after {len(content)} characters of content"
        )

    def __repr__(self) -> str:
        return f"IncompleteTagError(tag={self.tag_name!r}, content_length={len(self.content)})"


class ReconcileError(EditError):
    """An edit body could not be reconciled into final file content."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class ElisionError(ReconcileError):
    """
    An elision marker could not be expanded from the old content.

    Raised when the lines around a marker have no anchor in the old file, when
    more than one region fits equally well, or when the file is new and there is
    nothing to elide from.

    Attributes:
        marker_line: 1-based line of the marker in the edit body (0 if unknown)
        reason: Short machine-friendly reason ("no_anchor", "ambiguous",
            "new_file", "out_of_order")
    """

    def __init__(
        self,
        reason: str,
        detail: str,
        marker_line: int = 0,
        path: str | None = None,
    ) -> None:
        self.reason = reason
        self.marker_line = marker_line
        location = f" (marker at line {marker_line})" if marker_line else ""
        super().__init__(f"Cannot reconcile elision{location}: {detail}", path=path)

    def __repr__(self) -> str:
        return f"ElisionError(reason={self.reason!r}, marker_line={self.marker_line})"


class SearchReplaceError(ReconcileError):
    """A SEARCH block was empty, not found, or matched more than once."""

    pass


class PatchFormatError(ReconcileError):
    """Unified diff text could not be parsed into hunks."""

    pass


class PatchApplyError(EditError):
    """
    A unified diff does not apply to the given content.

    Attributes:
        hunk_index: 0-based index of the first hunk that failed
    """

    def __init__(self, message: str, hunk_index: int | None = None) -> None:
        self.hunk_index = hunk_index
        super().__init__(message)


class InvalidPathError(EditError):
    """A file path is malformed or escapes the project root."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path {path!r}: {reason}")
