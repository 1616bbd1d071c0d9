"""Pipeline configuration management.

Configuration file location priority:
1. Explicit path passed to PipelineConfigLoader
2. EDITS_PIPELINE_CONFIG environment variable
3. Standard location: ~/.edits-mcp/pipeline.yml
4. Built-in defaults (if no config file found)

Example config file:
```yaml
scanner:
  lookback_window: 64
  body_buffer_multiple: 2
  max_open_tag_length: 4096

expander:
  anchor_context_lines: 5
  fuzzy_line_threshold: 0.85

chooser:
  context_lines: 3
  max_changed_line_fraction: 0.6

applier:
  respect_gitignore: true
  exclude_patterns:
    - "secrets/**"
  max_concurrency: 8

edit_tags:
  - write_file
  - file
```

Architecture:
- Load config once during app startup and reuse it
- Validate schema using Pydantic models
- Works without a config file (all sections have defaults)
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# Comment openers recognized in front of an elision marker:
# //, #, /* (JSX {/* too), <!--, -- (SQL, Lua, Haskell), ; (Lisp, asm), % (TeX, Erlang)
_COMMENT_OPENER = r"(?:\{/\*+|/\*+|//+|#+|<!--|--|;+|%+)"

DEFAULT_ELISION_PATTERNS: list[str] = [
    # // ... existing code ...   # ... rest of the file ...   <!-- ... unchanged ... -->
    rf"^\s*{_COMMENT_OPENER}\s*(?:\.{{2,}}|…)\s*.*?"
    r"\b(?:existing|unchanged|rest of|remaining|omitted|same as before|other)\b.*$",
    # // existing code ...
    rf"^\s*{_COMMENT_OPENER}\s*existing code\b.*$",
    # # ...   /* ... */   <!-- ... -->
    rf"^\s*{_COMMENT_OPENER}\s*(?:\.{{3,}}|…)\s*(?:\*+/\}}?|-->)?\s*$",
]

DEFAULT_EDIT_TAGS: list[str] = ["write_file", "file"]

_TAG_NAME_RE = re.compile(r"^[A-Za-z_][\w\-.:]*$")


# ===========================================================================
# Configuration Models
# ===========================================================================


class ScannerConfig(BaseModel):
    """Tag stream scanner buffering limits."""

    lookback_window: int = Field(
        default=64,
        ge=16,
        le=1_048_576,
        description="Characters retained while waiting for a tag that may be split across chunks",
    )
    body_buffer_multiple: int = Field(
        default=2,
        ge=2,
        le=1024,
        description=(
            "An open tag body larger than this multiple of lookback_window is flushed "
            "speculatively (unless the tag is registered with an unbounded body)"
        ),
    )
    max_open_tag_length: int = Field(
        default=4096,
        ge=16,
        le=1_048_576,
        description=(
            "A partial open tag (name and attributes, no '>' yet) is held back until it "
            "is this long; past that it is released as plain text"
        ),
    )


class ExpanderConfig(BaseModel):
    """Elision expansion settings."""

    elision_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ELISION_PATTERNS),
        description="Regexes (case-insensitive) matching a whole elision-marker line",
    )
    anchor_context_lines: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Lines on each side of a marker used to score anchor candidates",
    )
    fuzzy_line_threshold: float = Field(
        default=0.85,
        gt=0.0,
        le=1.0,
        description="Minimum similarity ratio for a paraphrased anchor line to match",
    )
    strip_code_fences: bool = Field(
        default=True,
        description="Remove a markdown code fence wrapping the whole edit body",
    )

    @field_validator("elision_patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        """Reject patterns that do not compile."""
        if not v:
            raise ValueError("At least one elision pattern is required")
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid elision pattern {pattern!r}: {e}") from e
        return v

    def compiled_patterns(self) -> list[re.Pattern[str]]:
        return [re.compile(p, re.IGNORECASE) for p in self.elision_patterns]


class ChooserConfig(BaseModel):
    """Full-file vs. patch selection policy."""

    context_lines: int = Field(default=3, ge=0, le=100, description="Unified diff context lines")
    max_changed_line_fraction: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Ship the full file when more than this fraction of old lines changed",
    )


class ApplierConfig(BaseModel):
    """Filesystem application settings."""

    encoding: str = Field(default="utf-8", description="Text encoding for reads and writes")
    respect_gitignore: bool = Field(
        default=True,
        description="Treat paths matched by the project's .gitignore as ignored",
    )
    exclude_patterns: list[str] = Field(
        default_factory=list,
        description="Extra gitignore-style patterns treated as ignored",
    )
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Maximum number of files written concurrently",
    )


class PipelineConfig(BaseModel):
    """Root pipeline configuration model."""

    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    expander: ExpanderConfig = Field(default_factory=ExpanderConfig)
    chooser: ChooserConfig = Field(default_factory=ChooserConfig)
    applier: ApplierConfig = Field(default_factory=ApplierConfig)
    edit_tags: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EDIT_TAGS),
        description="Tag names whose body is a file edit (attribute: path)",
    )

    @field_validator("edit_tags")
    @classmethod
    def validate_edit_tags(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("edit_tags must name at least one tag")
        seen: set[str] = set()
        for name in v:
            if not _TAG_NAME_RE.match(name):
                raise ValueError(f"Invalid tag name: {name!r}")
            if name in seen:
                raise ValueError(f"Duplicate tag name: {name!r}")
            seen.add(name)
        return v

    @model_validator(mode="after")
    def validate_window_fits_close_tags(self) -> PipelineConfig:
        """The lookback window must be able to hold a complete close tag."""
        longest_close = max(len(f"</{name}>") for name in self.edit_tags)
        if self.scanner.lookback_window < longest_close:
            raise ValueError(
                f"scanner.lookback_window ({self.scanner.lookback_window}) is shorter than "
                f"the longest close tag ({longest_close} characters)"
            )
        return self


# ===========================================================================
# Configuration Loader
# ===========================================================================


class PipelineConfigLoader:
    """Loader for pipeline configuration from a YAML file.

    Usage:
        ```python
        loader = PipelineConfigLoader()
        config = loader.load_config()
        pipeline = EditPipeline(project_root, config=config)
        ```

    The loaded config is cached; call ``load_config()`` once during startup.
    """

    def __init__(self, config_path: str | Path | None = None):
        self._config: PipelineConfig | None = None
        self._explicit_path = Path(config_path) if config_path else None

    def get_config_path(self) -> Path | None:
        """Determine config file path using priority order.

        Returns:
            Path to config file, or None if no file exists
        """
        if self._explicit_path:
            if self._explicit_path.exists():
                return self._explicit_path
            logger.warning(f"Explicit pipeline config path does not exist: {self._explicit_path}")
            return None

        env_path_str = os.getenv("EDITS_PIPELINE_CONFIG")
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.exists():
                return env_path
            logger.warning(f"EDITS_PIPELINE_CONFIG path does not exist: {env_path}")
            return None

        standard_path = Path.home() / ".edits-mcp" / "pipeline.yml"
        if standard_path.exists():
            return standard_path

        return None

    def load_config(self) -> PipelineConfig:
        """Load and validate pipeline configuration.

        Returns:
            Validated PipelineConfig (defaults if no config file found)

        Raises:
            ValueError: If the config file is not valid YAML or fails validation
        """
        if self._config is not None:
            return self._config

        config_path = self.get_config_path()

        if config_path is None:
            logger.info("No pipeline config file found, using defaults")
            self._config = PipelineConfig()
            return self._config

        logger.info(f"Loading pipeline config from: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)

            if raw_config is None:
                raw_config = {}
            if not isinstance(raw_config, dict):
                raise ValueError("Config file must contain a YAML dictionary")

            config = PipelineConfig(**raw_config)
            logger.info(
                f"Loaded pipeline config: window={config.scanner.lookback_window}, "
                f"edit tags={config.edit_tags}"
            )
            self._config = config
            return config

        except (yaml.YAMLError, ValueError) as e:
            raise ValueError(f"Failed to load pipeline config from {config_path}: {e}") from e
