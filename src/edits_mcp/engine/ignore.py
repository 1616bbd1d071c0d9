"""Ignore predicate for the applier.

The predicate contract is ``(path, project_root) -> bool``: True means the path
must never be written. It may raise for malformed paths, which the applier
classifies as invalid rather than ignored.
"""

from __future__ import annotations

import logging
import posixpath
import threading
from collections.abc import Callable
from pathlib import Path

import pathspec

from .exceptions import InvalidPathError

logger = logging.getLogger(__name__)

IgnorePredicate = Callable[[str, Path], bool]

# Paths never written regardless of the project's .gitignore
DEFAULT_EXCLUDE_PATTERNS: list[str] = [
    # Version control
    ".git/",
    ".svn/",
    ".hg/",
    # Dependencies
    "node_modules/",
    "bower_components/",
    ".venv/",
    "venv/",
    # Python specific
    "__pycache__/",
    "*.pyc",
    "*.pyo",
    "*.egg-info/",
]


def validate_relative_path(path: str) -> str:
    """Return ``path`` normalized to POSIX form.

    Raises:
        InvalidPathError: Empty, contains NUL or control characters, absolute,
            or escapes the project root
    """
    if not path or not path.strip():
        raise InvalidPathError(path, "empty path")
    if any(ord(c) < 32 or ord(c) == 127 for c in path):
        raise InvalidPathError(path, "contains control characters")

    posix = path.replace("\\", "/")
    if posix.startswith("/") or Path(path).is_absolute() or (len(posix) > 1 and posix[1] == ":"):
        raise InvalidPathError(path, "absolute paths are not allowed")

    normalized = posixpath.normpath(posix)
    if normalized == ".":
        raise InvalidPathError(path, "path names the project root itself")
    if normalized == ".." or normalized.startswith("../"):
        raise InvalidPathError(path, "path escapes the project root")
    return normalized


def path_key(path: str) -> str:
    """Identity of ``path`` within a project: ``a.py``, ``./a.py`` and ``src/../a.py`` share one.

    Paths that fail validation are their own key.
    """
    try:
        return validate_relative_path(path)
    except InvalidPathError:
        return path


def load_gitignore_patterns(base_path: Path) -> list[str]:
    """Load .gitignore patterns from base directory.

    Returns:
        List of gitignore patterns (empty if no .gitignore found)
    """
    gitignore_path = base_path / ".gitignore"
    patterns: list[str] = []

    if not gitignore_path.exists():
        return patterns

    with open(gitignore_path, encoding="utf-8") as f:
        for line in f:
            line = line.rstrip("\n")
            if line.strip() and not line.startswith("#"):
                patterns.append(line)

    return patterns


class GitignorePredicate:
    """
    Default ignore predicate using gitignore semantics (pathspec).

    Matches the project's top-level ``.gitignore`` (optional), the default
    exclude patterns and any extra patterns. Specs are built once per project
    root and cached for the lifetime of the predicate.
    """

    def __init__(
        self,
        respect_gitignore: bool = True,
        extra_patterns: list[str] | None = None,
        include_defaults: bool = True,
    ) -> None:
        self.respect_gitignore = respect_gitignore
        self.extra_patterns = list(extra_patterns or [])
        self.include_defaults = include_defaults
        self._specs: dict[Path, pathspec.PathSpec] = {}
        self._lock = threading.Lock()

    def _spec_for(self, project_root: Path) -> pathspec.PathSpec:
        root = project_root.resolve()
        with self._lock:
            spec = self._specs.get(root)
            if spec is None:
                patterns: list[str] = []
                if self.include_defaults:
                    patterns.extend(DEFAULT_EXCLUDE_PATTERNS)
                if self.respect_gitignore:
                    patterns.extend(load_gitignore_patterns(root))
                patterns.extend(self.extra_patterns)
                spec = pathspec.GitIgnoreSpec.from_lines(patterns)
                self._specs[root] = spec
                logger.debug(f"Built ignore spec for {root} ({len(patterns)} patterns)")
            return spec

    def __call__(self, path: str, project_root: Path) -> bool:
        normalized = validate_relative_path(path)
        return self._spec_for(Path(project_root)).match_file(normalized)
