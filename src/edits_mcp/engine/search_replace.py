"""SEARCH/REPLACE block edits.

Format:
    <<<<<<< SEARCH
    text to find
    =======
    replacement
    >>>>>>> REPLACE

Blocks are applied in order, each to the result of the previous one. A search
text is located by the first strategy that finds it:

1. Exact substring (must be unique unless ``allow_multiple``)
2. Same text with extra or less uniform indentation (spaces or tabs); the
   replacement is re-indented the same way
3. Whitespace-insensitive match, mapped back to the original span
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .exceptions import SearchReplaceError

logger = logging.getLogger(__name__)

_BLOCK_RE = re.compile(
    r"<<<<<<< SEARCH\n(?P<search>[\s\S]*?)\n=======\n(?:(?P<replace>[\s\S]*?)\n)?>>>>>>> REPLACE"
)

MAX_EXTRA_SPACES = 12
MAX_EXTRA_TABS = 6


@dataclass(frozen=True)
class SearchReplaceBlock:
    search: str
    replace: str


def parse_search_replace_blocks(text: str) -> list[SearchReplaceBlock]:
    return [
        SearchReplaceBlock(search=m.group("search"), replace=m.group("replace") or "")
        for m in _BLOCK_RE.finditer(text)
    ]


def is_search_replace(text: str) -> bool:
    """True when ``text`` contains at least one SEARCH/REPLACE block."""
    return _BLOCK_RE.search(text) is not None


def _indent_lines(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


def _dedent_lines(text: str, prefix: str) -> str:
    return "\n".join(line[len(prefix) :] if line.startswith(prefix) else line for line in text.split("\n"))


def _common_indent(text: str) -> str:
    indents = [re.match(r"[ \t]*", line).group(0) for line in text.split("\n") if line.strip()]  # type: ignore[union-attr]
    if not indents:
        return ""
    prefix = indents[0]
    for indent in indents[1:]:
        while not indent.startswith(prefix):
            prefix = prefix[:-1]
    return prefix


def _with_adjusted_indentation(content: str, block: SearchReplaceBlock) -> SearchReplaceBlock | None:
    """Find a uniquely matching re-indented variant of ``block``."""
    candidates: list[SearchReplaceBlock] = []
    for width in range(1, MAX_EXTRA_SPACES + 1):
        prefix = " " * width
        candidates.append(
            SearchReplaceBlock(_indent_lines(block.search, prefix), _indent_lines(block.replace, prefix))
        )
    for width in range(1, MAX_EXTRA_TABS + 1):
        prefix = "\t" * width
        candidates.append(
            SearchReplaceBlock(_indent_lines(block.search, prefix), _indent_lines(block.replace, prefix))
        )
    common = _common_indent(block.search)
    if common:
        candidates.append(
            SearchReplaceBlock(_dedent_lines(block.search, common), _dedent_lines(block.replace, common))
        )

    for candidate in candidates:
        if content.count(candidate.search) == 1:
            return candidate
    return None


def _whitespace_insensitive_span(content: str, search: str) -> tuple[int, int] | None:
    squashed = "".join(search.split())
    if not squashed:
        return None
    pattern = re.compile(r"\s*".join(re.escape(c) for c in squashed))
    matches = list(pattern.finditer(content))
    if len(matches) != 1:
        return None
    return matches[0].span()


def apply_search_replace(
    content: str,
    blocks: list[SearchReplaceBlock],
    allow_multiple: bool = False,
) -> str:
    """Apply SEARCH/REPLACE blocks to ``content``.

    Raises:
        SearchReplaceError: Empty search text, no match, or more than one match
            without ``allow_multiple``
    """
    if not blocks:
        raise SearchReplaceError("No SEARCH/REPLACE blocks found")

    for index, block in enumerate(blocks, start=1):
        if not block.search:
            raise SearchReplaceError(f"Block {index}: search text is empty")

        count = content.count(block.search)
        if count == 1 or (count > 1 and allow_multiple):
            content = content.replace(block.search, block.replace)
            continue
        if count > 1:
            raise SearchReplaceError(
                f"Block {index}: found {count} occurrences of the search text; "
                "use a longer search text or allow multiple replacements"
            )

        adjusted = _with_adjusted_indentation(content, block)
        if adjusted is not None:
            logger.debug(f"Block {index} matched with indentation adjustment")
            content = content.replace(adjusted.search, adjusted.replace)
            continue

        span = _whitespace_insensitive_span(content, block.search)
        if span is not None:
            logger.debug(f"Block {index} matched with whitespace removed")
            start, end = span
            content = content[:start] + block.replace + content[end:]
            continue

        raise SearchReplaceError(f"Block {index}: search text was not found in the file")

    return content
