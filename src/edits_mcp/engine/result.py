"""FileResult for path resolution and file access checks.

A small success/failure monad used by the filesystem layer (`fs.py`) so that
path validation can report *why* a path was rejected without raising. The
applier turns a failed result into an `invalid` classification.

Components that reconcile edits raise exceptions instead (see `exceptions.py`).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ResultStatus(str, Enum):
    """Status of a filesystem check."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class FileResult(Generic[T]):  # noqa: UP046
    """
    Result of a filesystem-layer operation.

    Usage:
        result = PathResolver.resolve_within(project_root, "src/app.py")
        if result.is_success:
            full_path = result.value
        else:
            logger.warning(f"Rejected path: {result.error}")
    """

    status: ResultStatus
    value: T | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Reject inconsistent states (success without value, failure without error)."""
        if self.status == ResultStatus.SUCCESS and self.value is None:
            raise ValueError("Success result must have a value")
        if self.status == ResultStatus.FAILED and not self.error:
            raise ValueError("Failed result must have an error message")

    @property
    def is_success(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status == ResultStatus.FAILED

    @classmethod
    def success(cls, value: T, metadata: dict[str, Any] | None = None) -> "FileResult[T]":
        """Create a successful result carrying ``value``."""
        return cls(status=ResultStatus.SUCCESS, value=value, metadata=metadata or {})

    @classmethod
    def failure(cls, error: str, metadata: dict[str, Any] | None = None) -> "FileResult[T]":
        """Create a failed result carrying an error message."""
        return cls(status=ResultStatus.FAILED, error=error, metadata=metadata or {})

    def __bool__(self) -> bool:
        return self.is_success

    def unwrap(self) -> T:
        """Get value or raise if the operation failed."""
        if not self.is_success:
            raise ValueError(f"Cannot unwrap failed result: {self.error}")
        if self.value is None:
            raise ValueError("Cannot unwrap result: value is None")
        return self.value

    def unwrap_or(self, default: T) -> T:
        if self.is_success and self.value is not None:
            return self.value
        return default
