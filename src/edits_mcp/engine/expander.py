"""Edit expansion: turn an edit body into the complete new file content.

An edit body is one of:
- SEARCH/REPLACE blocks, applied to the old content
- a unified diff, applied leniently to the old content
- the new file, possibly abbreviated with elision markers
  (``// ... existing code ...``) standing in for unchanged regions

Elision expansion never guesses. Each marker is anchored by the literal line
just before it and the literal line just after it; candidate regions of the old
content are scored by how well the surrounding lines agree, and only a unique
best region is spliced in. Everything else raises ElisionError.
"""

from __future__ import annotations

import bisect
import difflib
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from .config import ExpanderConfig
from .exceptions import ElisionError, PatchApplyError, PatchFormatError, ReconcileError, SearchReplaceError
from .search_replace import apply_search_replace, is_search_replace, parse_search_replace_blocks
from .textdiff import apply_unified_patch, is_unified_diff, split_lines

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```[\w+\-.#]*[ \t]*\n(?P<body>[\s\S]*?\n)?```[ \t]*\n?$")


def strip_code_fence(text: str) -> str:
    """Remove a markdown code fence wrapping the whole text.

    The newline before the closing fence is kept as the last line terminator.

    Example:
        >>> strip_code_fence("```python\\nx = 1\\n```")
        'x = 1\\n'
    """
    match = _CODE_FENCE_RE.match(text.strip("\n") + "\n")
    if not match:
        return text
    return match.group("body") or ""


def _squash(line: str) -> str:
    return "".join(line.split())


def _lcs_length(a: list[str], b: list[str]) -> int:
    if not a or not b:
        return 0
    previous = [0] * (len(b) + 1)
    for x in a:
        current = [0]
        for j, y in enumerate(b):
            current.append(previous[j] + 1 if x == y else max(previous[j + 1], current[j]))
        previous = current
    return previous[-1]


@dataclass
class _Segment:
    """A run of literal lines, or an elision marker (``lines`` empty)."""

    lines: list[str]
    marker_line: int = 0

    @property
    def is_marker(self) -> bool:
        return self.marker_line > 0


class EditExpander:
    """
    Reconstructs complete file content from an edit body.

    Deterministic: the same (old content, edit body) always gives the same
    output or the same error. Literal text is copied byte-for-byte.
    """

    def __init__(self, config: ExpanderConfig | None = None) -> None:
        self._config = config if config is not None else ExpanderConfig()
        self._patterns = self._config.compiled_patterns()

    def is_marker(self, line: str) -> bool:
        """True when ``line`` is a whole-line elision marker."""
        text = line.rstrip("\r\n")
        return any(pattern.match(text) for pattern in self._patterns)

    def has_markers(self, text: str) -> bool:
        return any(self.is_marker(line) for line in split_lines(text))

    def expand(self, old_content: str | None, raw_new_representation: str, path: str | None = None) -> str:
        """Return the complete new content.

        When the old content uses CRLF line endings, both inputs are reconciled
        with LF endings and the result is converted back to CRLF.

        Raises:
            ElisionError: A marker cannot be anchored, or the file is new
            SearchReplaceError: A SEARCH block is missing or ambiguous
            PatchFormatError: A unified diff cannot be parsed
            ReconcileError: A unified diff does not apply to the old content
        """
        body = raw_new_representation
        if self._config.strip_code_fences:
            body = strip_code_fence(body)

        crlf = old_content is not None and "\r\n" in old_content
        old = old_content
        if crlf:
            assert old is not None
            old = old.replace("\r\n", "\n")
            body = body.replace("\r\n", "\n")

        try:
            result = self._expand(old, body)
        except ReconcileError as e:
            if e.path is None:
                e.path = path
            raise

        if crlf:
            result = result.replace("\n", "\r\n")
        return result

    # ------------------------------------------------------------------
    # Representations
    # ------------------------------------------------------------------

    def _expand(self, old: str | None, body: str) -> str:
        if is_search_replace(body):
            if old is None:
                raise SearchReplaceError("SEARCH/REPLACE edit targets a file that does not exist")
            logger.debug("Expanding SEARCH/REPLACE blocks")
            return apply_search_replace(old, parse_search_replace_blocks(body))

        if is_unified_diff(body):
            logger.debug("Expanding unified diff")
            try:
                return apply_unified_patch(
                    old or "",
                    body,
                    lenient=True,
                    fuzzy_threshold=self._config.fuzzy_line_threshold,
                )
            except PatchFormatError:
                raise
            except PatchApplyError as e:
                raise ReconcileError(f"Unified diff does not apply to the current content: {e}") from e

        return self._expand_elisions(old, body)

    def _split_segments(self, body: str) -> list[_Segment]:
        segments: list[_Segment] = []
        for number, line in enumerate(split_lines(body), start=1):
            if self.is_marker(line):
                # Consecutive markers elide one region.
                if not (segments and segments[-1].is_marker):
                    segments.append(_Segment(lines=[], marker_line=number))
            elif segments and not segments[-1].is_marker:
                segments[-1].lines.append(line)
            else:
                segments.append(_Segment(lines=[line]))
        return segments

    def _expand_elisions(self, old: str | None, body: str) -> str:
        segments = self._split_segments(body)
        markers = [s for s in segments if s.is_marker]
        if not markers:
            return body
        if old is None:
            raise ElisionError(
                "new_file",
                "the file does not exist, so there is no content to elide",
                marker_line=markers[0].marker_line,
            )

        old_lines = split_lines(old)
        output: list[str] = []
        cursor = 0

        for index, segment in enumerate(segments):
            if not segment.is_marker:
                output.extend(segment.lines)
                continue

            before = segments[index - 1].lines if index > 0 else None
            after = segments[index + 1].lines if index + 1 < len(segments) else None
            start, end = self._anchor(old_lines, before, after, cursor, segment.marker_line)
            logger.debug(
                f"Marker at line {segment.marker_line} expands to old lines {start + 1}-{end}"
            )
            output.extend(old_lines[start:end])
            cursor = end

        return "".join(output)

    # ------------------------------------------------------------------
    # Anchoring
    # ------------------------------------------------------------------

    def _matchers(self) -> list[Callable[[str, str], bool]]:
        threshold = self._config.fuzzy_line_threshold

        def exact(a: str, b: str) -> bool:
            return a.rstrip("\r\n") == b.rstrip("\r\n")

        def whitespace_insensitive(a: str, b: str) -> bool:
            return _squash(a) == _squash(b)

        def fuzzy(a: str, b: str) -> bool:
            a, b = a.strip(), b.strip()
            if not a or not b:
                return False
            matcher = difflib.SequenceMatcher(None, a, b)
            return (
                matcher.real_quick_ratio() >= threshold
                and matcher.quick_ratio() >= threshold
                and matcher.ratio() >= threshold
            )

        return [exact, whitespace_insensitive, fuzzy]

    def _positions(self, old_lines: list[str], line: str, lower: int) -> list[int]:
        """Old line indexes >= ``lower`` matching ``line`` in the first tier with any hit."""
        for same in self._matchers():
            hits = [j for j in range(lower, len(old_lines)) if same(old_lines[j], line)]
            if hits:
                return hits
        return []

    def _anchor(
        self,
        old_lines: list[str],
        before: list[str] | None,
        after: list[str] | None,
        cursor: int,
        marker_line: int,
    ) -> tuple[int, int]:
        """Locate the old region ``old_lines[start:end]`` a marker stands for."""
        context = self._config.anchor_context_lines

        if before is None:
            starts = [cursor]
        else:
            starts = [j + 1 for j in self._positions(old_lines, before[-1], cursor)]
        if after is None:
            ends = [len(old_lines)]
        else:
            ends = self._positions(old_lines, after[0], cursor)

        if not starts or not ends:
            side = "before" if not starts else "after"
            raise ElisionError(
                "no_anchor",
                f"the line {side} the marker does not appear in the existing file",
                marker_line=marker_line,
            )

        before_context = [_squash(line) for line in (before or [])[-context:]]
        after_context = [_squash(line) for line in (after or [])[:context]]

        def start_score(start: int) -> int:
            window = [_squash(line) for line in old_lines[max(0, start - context) : start]]
            return _lcs_length(before_context, window)

        def end_score(end: int) -> int:
            window = [_squash(line) for line in old_lines[end : end + context]]
            return _lcs_length(after_context, window)

        # Scores are independent per side: for each end, pair it with the best
        # start at or before it, counting ties.
        scored_starts = sorted((s, start_score(s)) for s in starts)
        start_keys = [s for s, _ in scored_starts]
        prefix_best: list[tuple[int, int]] = []
        best, count = -1, 0
        for _, score in scored_starts:
            if score > best:
                best, count = score, 1
            elif score == best:
                count += 1
            prefix_best.append((best, count))

        best_total = -1
        best_pairs = 0
        best_pair: tuple[int, int] | None = None
        for end in ends:
            usable = bisect.bisect_right(start_keys, end)
            if usable == 0:
                continue
            start_best, start_count = prefix_best[usable - 1]
            total = start_best + end_score(end)
            if total > best_total:
                best_total, best_pairs = total, start_count
                best_pair = (self._best_start(scored_starts[:usable], start_best), end)
            elif total == best_total:
                best_pairs += start_count

        if best_pair is None:
            raise ElisionError(
                "out_of_order",
                "the lines around the marker appear in the existing file in the wrong order",
                marker_line=marker_line,
            )
        if best_pairs > 1:
            raise ElisionError(
                "ambiguous",
                f"{best_pairs} regions of the existing file fit the marker equally well",
                marker_line=marker_line,
            )
        return best_pair

    @staticmethod
    def _best_start(scored_starts: list[tuple[int, int]], score: int) -> int:
        return next(s for s, value in scored_starts if value == score)
