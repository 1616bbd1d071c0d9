"""Filesystem access for the applier.

- PathResolver: containment check for project-relative paths (FileResult, never raises)
- FileSystem: the storage contract the applier depends on
- LocalFileSystem: disk implementation with atomic writes that keeps line
  endings exactly as given

LocalFileSystem raises OSError for I/O failures; the applier lets those
propagate as unexpected errors.
"""

from __future__ import annotations

import contextlib
import os
import stat
import tempfile
from pathlib import Path
from typing import Protocol

from .result import FileResult


class PathResolver:
    """Project-relative path resolution with containment checks.

    Rejects:
    - Absolute paths and paths that escape the project root via ``..``
    - Paths whose final component is a symlink
    - Paths that resolve outside the root through a symlinked parent
    """

    @staticmethod
    def resolve_within(project_root: Path, path: str) -> FileResult[Path]:
        """Resolve ``path`` under ``project_root``.

        Returns:
            FileResult.success(resolved_path) or FileResult.failure(error_message)

        Example:
            result = PathResolver.resolve_within(Path("/repo"), "src/app.py")
            # result.value == Path("/repo/src/app.py")
        """
        if not path or "\x00" in path:
            return FileResult.failure(f"Malformed path: {path!r}")

        file_path = Path(path)
        if file_path.is_absolute():
            return FileResult.failure(f"Absolute paths are not allowed: {path}")

        try:
            root = project_root.resolve()
        except (OSError, RuntimeError) as e:
            return FileResult.failure(f"Failed to resolve project root '{project_root}': {e}")

        absolute_path = root / file_path

        if absolute_path.is_symlink():
            return FileResult.failure(f"Symlinks not allowed for security: {absolute_path}")

        try:
            resolved_path = absolute_path.resolve()
        except (OSError, RuntimeError) as e:
            return FileResult.failure(f"Failed to resolve path '{path}': {e}")

        try:
            resolved_path.relative_to(root)
        except ValueError:
            return FileResult.failure(
                f"Path escapes project root. Path: {path}, Resolved: {resolved_path}, Root: {root}"
            )

        if resolved_path == root:
            return FileResult.failure(f"Path names the project root itself: {path!r}")

        return FileResult.success(resolved_path)


class FileSystem(Protocol):
    """Storage contract used by the applier and pipeline."""

    def exists(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def read_file(self, path: Path) -> str: ...

    def write_file(self, path: Path, content: str) -> None: ...

    def mkdir_recursive(self, path: Path) -> None: ...


class LocalFileSystem:
    """Local disk implementation of FileSystem.

    Reads and writes use ``newline=""`` so CRLF and LF endings are preserved
    byte-for-byte. Writes go to a temporary file in the same directory which
    then replaces the target, so readers never observe a partial file.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def read_file(self, path: Path) -> str:
        with open(path, encoding=self.encoding, newline="") as f:
            return f.read()

    def write_file(self, path: Path, content: str) -> None:
        mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else 0o644

        fd: int | None = None
        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp.edit.", dir=path.parent)
            with os.fdopen(fd, "w", encoding=self.encoding, newline="") as fh:
                fd = None
                fh.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
            tmp_path = None
        finally:
            if fd is not None:
                with contextlib.suppress(OSError):
                    os.close(fd)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.remove(tmp_path)

    def mkdir_recursive(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
