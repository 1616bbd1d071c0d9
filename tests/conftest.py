"""Shared test configuration for edits-mcp tests.

Provides:
- A project directory under tmp_path
- A filesystem double that records every write
- Isolation from a developer's real ~/.edits-mcp config and environment
"""

from pathlib import Path

import pytest

from edits_mcp.engine import LocalFileSystem


class RecordingFileSystem(LocalFileSystem):
    """LocalFileSystem that remembers which paths were written."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[Path] = []

    def write_file(self, path: Path, content: str) -> None:
        self.writes.append(path)
        super().write_file(path, content)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep config lookup away from the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("EDITS_PIPELINE_CONFIG", raising=False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Empty project root."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def recording_fs() -> RecordingFileSystem:
    return RecordingFileSystem()
