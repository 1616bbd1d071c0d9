"""Unit tests for pipeline configuration models and the YAML loader."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from edits_mcp.engine import (
    ExpanderConfig,
    PipelineConfig,
    PipelineConfigLoader,
    ScannerConfig,
)


class TestPipelineConfig:
    """Validation of the configuration models."""

    def test_defaults(self) -> None:
        config = PipelineConfig()

        assert config.scanner.lookback_window == 64
        assert config.scanner.body_buffer_multiple == 2
        assert config.scanner.max_open_tag_length == 4096
        assert config.expander.fuzzy_line_threshold == 0.85
        assert config.chooser.context_lines == 3
        assert config.chooser.max_changed_line_fraction == 1.0
        assert config.applier.respect_gitignore is True
        assert config.edit_tags == ["write_file", "file"]

    def test_window_shorter_than_close_tag_rejected(self) -> None:
        with pytest.raises(ValidationError, match="lookback_window"):
            PipelineConfig(
                scanner=ScannerConfig(lookback_window=16),
                edit_tags=["a_very_long_edit_tag_name"],
            )

    def test_invalid_elision_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid elision pattern"):
            ExpanderConfig(elision_patterns=["(unclosed"])

    def test_empty_elision_patterns_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExpanderConfig(elision_patterns=[])

    def test_duplicate_edit_tags_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate tag name"):
            PipelineConfig(edit_tags=["file", "file"])

    def test_invalid_edit_tag_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid tag name"):
            PipelineConfig(edit_tags=["not a tag"])

    def test_body_buffer_multiple_lower_bound(self) -> None:
        with pytest.raises(ValidationError):
            ScannerConfig(body_buffer_multiple=1)


class TestPipelineConfigLoader:
    """Config file discovery and YAML loading."""

    def test_no_file_uses_defaults(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level("INFO")

        config = PipelineConfigLoader().load_config()

        assert config == PipelineConfig()
        assert "using defaults" in caplog.text

    def test_explicit_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yml"
        path.write_text(
            "scanner:\n"
            "  lookback_window: 128\n"
            "chooser:\n"
            "  max_changed_line_fraction: 0.5\n"
            "applier:\n"
            "  exclude_patterns:\n"
            "    - 'secrets/**'\n"
            "edit_tags:\n"
            "  - edit\n"
        )

        config = PipelineConfigLoader(path).load_config()

        assert config.scanner.lookback_window == 128
        assert config.chooser.max_changed_line_fraction == 0.5
        assert config.applier.exclude_patterns == ["secrets/**"]
        assert config.edit_tags == ["edit"]

    def test_empty_yaml_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yml"
        path.write_text("")

        assert PipelineConfigLoader(path).load_config() == PipelineConfig()

    def test_non_mapping_yaml_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="YAML dictionary"):
            PipelineConfigLoader(path).load_config()

    def test_invalid_values_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yml"
        path.write_text("scanner:\n  lookback_window: 2\n")

        with pytest.raises(ValueError, match="Failed to load pipeline config"):
            PipelineConfigLoader(path).load_config()

    def test_environment_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "from-env.yml"
        path.write_text("expander:\n  anchor_context_lines: 9\n")
        monkeypatch.setenv("EDITS_PIPELINE_CONFIG", str(path))

        loader = PipelineConfigLoader()

        assert loader.get_config_path() == path
        assert loader.load_config().expander.anchor_context_lines == 9

    def test_standard_location(self) -> None:
        standard = Path.home() / ".edits-mcp" / "pipeline.yml"
        standard.parent.mkdir()
        standard.write_text("chooser:\n  context_lines: 1\n")

        assert PipelineConfigLoader().load_config().chooser.context_lines == 1

    def test_missing_explicit_path_falls_back_to_defaults(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        loader = PipelineConfigLoader(tmp_path / "nope.yml")

        assert loader.get_config_path() is None
        assert loader.load_config() == PipelineConfig()
        assert "does not exist" in caplog.text

    def test_config_is_cached(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yml"
        path.write_text("chooser:\n  context_lines: 2\n")
        loader = PipelineConfigLoader(path)

        first = loader.load_config()
        path.write_text("chooser:\n  context_lines: 7\n")

        assert loader.load_config() is first
