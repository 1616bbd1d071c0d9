"""Unified diff generation, parsing and application.

Lines are split on "\\n" only and keep their terminators, so "\\r\\n" endings,
stray "\\r" characters and a missing final newline all survive a round trip:
``apply_unified_patch(old, generate_unified_diff(old, new, path)) == new``.

Two application modes:
- strict: every hunk must match the content exactly (an offset from the line
  numbers in the header is allowed). Used by the applier to detect drift.
- lenient: for diffs written by a model. Hunk counts are ignored, headers
  without line numbers are accepted, and context that differs only in
  whitespace or by light paraphrase still locates the hunk.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field

from .exceptions import PatchApplyError, PatchFormatError

NO_NEWLINE_MARKER = "\\ No newline at end of file\n"

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_FILE_HEADER_PREFIXES = ("--- ", "+++ ", "diff ", "index ", "new file mode", "deleted file mode")


def split_lines(text: str) -> list[str]:
    """Split on "\\n" keeping terminators. ``"".join(split_lines(t)) == t``."""
    if not text:
        return []
    lines = text.split("\n")
    result = [line + "\n" for line in lines[:-1]]
    if lines[-1]:
        result.append(lines[-1])
    return result


def _squash(line: str) -> str:
    return "".join(line.split())


# ============================================================================
# Generation
# ============================================================================


def generate_unified_diff(old: str, new: str, path: str, context_lines: int = 3) -> str:
    """Generate a unified diff from ``old`` to ``new`` with a/ and b/ headers.

    Returns an empty string when the contents are identical.
    """
    diff_lines = difflib.unified_diff(
        split_lines(old),
        split_lines(new),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        n=context_lines,
    )

    output: list[str] = []
    for line in diff_lines:
        if line.endswith("\n"):
            output.append(line)
        else:
            output.append(line + "\n")
            output.append(NO_NEWLINE_MARKER)
    return "".join(output)


def compute_stats(original: str, modified: str) -> dict[str, int]:
    """Calculate line statistics between original and modified content.

    Returns:
        Dictionary with 'added', 'removed', 'modified' counts
    """
    matcher = difflib.SequenceMatcher(None, split_lines(original), split_lines(modified))

    lines_added = 0
    lines_removed = 0
    lines_modified = 0

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "replace":
            lines_modified += max(i2 - i1, j2 - j1)
        elif tag == "delete":
            lines_removed += i2 - i1
        elif tag == "insert":
            lines_added += j2 - j1

    return {"added": lines_added, "removed": lines_removed, "modified": lines_modified}


def changed_line_fraction(original: str, modified: str) -> float:
    """Fraction of the original lines that were replaced or deleted."""
    old_lines = split_lines(original)
    if not old_lines:
        return 1.0
    matcher = difflib.SequenceMatcher(None, old_lines, split_lines(modified), autojunk=False)
    changed = sum(i2 - i1 for tag, i1, i2, _, _ in matcher.get_opcodes() if tag != "equal")
    return changed / len(old_lines)


# ============================================================================
# Parsing
# ============================================================================


@dataclass
class Hunk:
    """One ``@@`` section of a unified diff.

    ``old_start`` is None when the header carried no line numbers.
    ``lines`` holds ``(op, text)`` pairs with op in " ", "-", "+".
    """

    old_start: int | None
    old_count: int
    new_start: int | None
    new_count: int
    lines: list[tuple[str, str]] = field(default_factory=list)

    def old_lines(self) -> list[str]:
        return [text for op, text in self.lines if op in " -"]

    def new_lines(self) -> list[str]:
        return [text for op, text in self.lines if op in " +"]

    @property
    def expected_index(self) -> int | None:
        """0-based index in the old content where this hunk should start."""
        if self.old_start is None:
            return None
        if self.old_count == 0:
            return self.old_start
        return max(0, self.old_start - 1)


def is_unified_diff(text: str) -> bool:
    """Heuristic: does ``text`` look like a unified diff rather than file content?

    Requires at least one ``@@`` hunk header, only diff headers before it, and
    at least one added or removed line.
    """
    seen_hunk = False
    has_change = False
    for line in split_lines(text):
        stripped = line.rstrip("\r\n")
        if stripped.startswith("@@"):
            seen_hunk = True
            continue
        if not seen_hunk:
            if stripped and not stripped.startswith(_FILE_HEADER_PREFIXES):
                return False
            continue
        if not stripped:
            continue
        if stripped[0] in "+-" and not stripped.startswith(("--- ", "+++ ")):
            has_change = True
        elif stripped[0] not in " \\" and not stripped.startswith(_FILE_HEADER_PREFIXES):
            return False
    return seen_hunk and has_change


def _body_text(line: str) -> str:
    text = line[1:]
    if not text.endswith("\n"):
        text += "\n"
    return text


def _strip_last_newline(hunk: Hunk) -> None:
    if not hunk.lines:
        return
    op, text = hunk.lines[-1]
    if text.endswith("\n"):
        hunk.lines[-1] = (op, text[:-1])


def parse_unified_diff(patch_text: str, *, lenient: bool = False) -> list[Hunk]:
    """Parse unified diff text into hunks.

    Strict mode consumes each hunk body by the counts in its header and rejects
    malformed lines. Lenient mode reads each body up to the next ``@@`` header,
    treats bare blank lines as blank context and recomputes the counts.

    Raises:
        PatchFormatError: No hunks, or a malformed header or body line
    """
    lines = split_lines(patch_text)
    hunks: list[Hunk] = []
    i = 0

    while i < len(lines):
        line = lines[i]
        if not line.startswith("@@"):
            if hunks and not lenient and line.strip() and not line.startswith(_FILE_HEADER_PREFIXES):
                raise PatchFormatError(f"Unexpected line outside hunk: {line.rstrip()!r}")
            i += 1
            continue

        match = _HUNK_HEADER_RE.match(line)
        if match:
            hunk = Hunk(
                old_start=int(match.group(1)),
                old_count=int(match.group(2)) if match.group(2) is not None else 1,
                new_start=int(match.group(3)),
                new_count=int(match.group(4)) if match.group(4) is not None else 1,
            )
        elif lenient:
            hunk = Hunk(old_start=None, old_count=0, new_start=None, new_count=0)
        else:
            raise PatchFormatError(f"Invalid hunk header: {line.rstrip()}")
        i += 1

        if lenient:
            i = _read_body_lenient(lines, i, hunk)
        else:
            i = _read_body_strict(lines, i, hunk, header=line.rstrip())
        hunks.append(hunk)

    if not hunks:
        raise PatchFormatError("No valid hunks found in patch")
    return hunks


def _read_body_strict(lines: list[str], i: int, hunk: Hunk, header: str) -> int:
    remaining_old = hunk.old_count
    remaining_new = hunk.new_count

    while remaining_old > 0 or remaining_new > 0:
        if i >= len(lines):
            raise PatchFormatError(f"Hunk {header} ends before its declared line counts")
        line = lines[i]
        op = line[0]
        if op == "\\":
            _strip_last_newline(hunk)
        elif op == " " and remaining_old > 0 and remaining_new > 0:
            hunk.lines.append((op, _body_text(line)))
            remaining_old -= 1
            remaining_new -= 1
        elif op == "-" and remaining_old > 0:
            hunk.lines.append((op, _body_text(line)))
            remaining_old -= 1
        elif op == "+" and remaining_new > 0:
            hunk.lines.append((op, _body_text(line)))
            remaining_new -= 1
        else:
            raise PatchFormatError(f"Invalid patch line in hunk {header}: {line.rstrip()!r}")
        i += 1

    if i < len(lines) and lines[i].startswith("\\"):
        _strip_last_newline(hunk)
        i += 1
    return i


def _read_body_lenient(lines: list[str], i: int, hunk: Hunk) -> int:
    while i < len(lines):
        line = lines[i]
        if line.startswith("@@"):
            break
        # A new file header pair ends the current file's hunks.
        if (
            line.startswith("--- ")
            and i + 1 < len(lines)
            and lines[i + 1].startswith("+++ ")
        ):
            break
        op = line[0]
        if op == "\\":
            _strip_last_newline(hunk)
        elif op in " -+":
            hunk.lines.append((op, _body_text(line)))
        elif line.strip() == "":
            hunk.lines.append((" ", line.lstrip(" \t") or "\n"))
        else:
            break
        i += 1

    # Trailing blank context is usually an artifact of how the diff was quoted.
    while hunk.lines and hunk.lines[-1][0] == " " and hunk.lines[-1][1].strip() == "":
        if any(op != " " for op, _ in hunk.lines):
            hunk.lines.pop()
        else:
            break

    hunk.old_count = len(hunk.old_lines())
    hunk.new_count = len(hunk.new_lines())
    return i


# ============================================================================
# Application
# ============================================================================


def apply_unified_patch(
    content: str,
    patch_text: str,
    *,
    lenient: bool = False,
    fuzzy_threshold: float = 0.85,
) -> str:
    """Apply unified diff ``patch_text`` to ``content``.

    Hunks are applied in order. Each hunk is searched for outward from the
    position its header names (shifted by the offset of earlier hunks), never
    before the end of the previous hunk. Context lines keep the file's own text.

    Raises:
        PatchFormatError: The patch cannot be parsed
        PatchApplyError: A hunk does not match the content
    """
    hunks = parse_unified_diff(patch_text, lenient=lenient)
    lines = split_lines(content)

    result: list[str] = []
    cursor = 0
    offset = 0

    for index, hunk in enumerate(hunks):
        old = hunk.old_lines()
        expected = hunk.expected_index
        if expected is not None:
            expected = min(max(expected + offset, cursor), len(lines))

        position = _locate_hunk(lines, old, expected, cursor, lenient, fuzzy_threshold)
        if position is None:
            where = f"line {hunk.old_start}" if hunk.old_start is not None else "any position"
            raise PatchApplyError(
                f"Hunk {index + 1} does not match the content at {where}",
                hunk_index=index,
            )

        if hunk.expected_index is not None:
            offset = position - hunk.expected_index

        result.extend(lines[cursor:position])
        file_index = position
        for op, text in hunk.lines:
            if op == " ":
                result.append(lines[file_index])
                file_index += 1
            elif op == "-":
                file_index += 1
            else:
                result.append(text)
        cursor = file_index

    result.extend(lines[cursor:])
    return "".join(result)


def _locate_hunk(
    lines: list[str],
    old: list[str],
    expected: int | None,
    cursor: int,
    lenient: bool,
    fuzzy_threshold: float,
) -> int | None:
    last_start = len(lines) - len(old)
    if last_start < cursor:
        return None

    if not old:
        # Pure insertion; without a line number there is nowhere to put it.
        return expected

    if expected is None:
        positions = list(range(cursor, last_start + 1))
    else:
        positions = _outward(expected, cursor, last_start)

    matchers = [lambda a, b: a == b]
    if lenient:
        matchers.append(lambda a, b: _squash(a) == _squash(b))
        matchers.append(
            lambda a, b: difflib.SequenceMatcher(None, a.strip(), b.strip()).ratio()
            >= fuzzy_threshold
        )

    for same in matchers:
        hits = [
            p
            for p in positions
            if all(same(lines[p + k], old[k]) for k in range(len(old)))
        ]
        if not hits:
            continue
        if expected is None and len(hits) > 1:
            # No line number to break the tie.
            return None
        return hits[0]
    return None


def _outward(expected: int, low: int, high: int) -> list[int]:
    """Positions in [low, high] ordered by distance from ``expected``."""
    expected = min(max(expected, low), high)
    order = [expected]
    step = 1
    while expected - step >= low or expected + step <= high:
        if expected - step >= low:
            order.append(expected - step)
        if expected + step <= high:
            order.append(expected + step)
        step += 1
    return order
