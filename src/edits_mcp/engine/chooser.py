"""Full-file vs. patch selection for reconciled edits."""

from __future__ import annotations

import logging

from .config import ChooserConfig
from .models import ChangeKind, ReconciledChange
from .textdiff import changed_line_fraction, generate_unified_diff

logger = logging.getLogger(__name__)


class RepresentationChooser:
    """
    Decides how a reconciled edit is shipped to the applier.

    Policy:
    - New file: full file
    - No change: full file equal to the old content (detectable no-op)
    - More than ``max_changed_line_fraction`` of the old lines changed: full file
    - Otherwise: patch when the unified diff is smaller in UTF-8 bytes than the
      new content, else full file

    A chosen patch always reproduces the expanded content when applied to the
    old content.
    """

    def __init__(self, config: ChooserConfig | None = None) -> None:
        self._config = config if config is not None else ChooserConfig()

    def choose(self, path: str, old_content: str | None, expanded: str) -> ReconciledChange:
        if old_content is None:
            return ReconciledChange(path=path, kind=ChangeKind.FULL_FILE, content=expanded)

        if old_content == expanded:
            logger.debug(f"{path}: no change")
            return ReconciledChange(path=path, kind=ChangeKind.FULL_FILE, content=expanded)

        fraction = changed_line_fraction(old_content, expanded)
        if fraction > self._config.max_changed_line_fraction:
            logger.debug(f"{path}: {fraction:.0%} of lines changed, shipping full file")
            return ReconciledChange(path=path, kind=ChangeKind.FULL_FILE, content=expanded)

        diff = generate_unified_diff(old_content, expanded, path, self._config.context_lines)
        if len(diff.encode("utf-8")) < len(expanded.encode("utf-8")):
            return ReconciledChange(path=path, kind=ChangeKind.PATCH, content=diff)
        return ReconciledChange(path=path, kind=ChangeKind.FULL_FILE, content=expanded)
