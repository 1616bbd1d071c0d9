"""Tag attribute parsing."""

from __future__ import annotations

import re
from collections.abc import Iterable

# name="value" or name='value'; values may span lines and contain '=' or '>'.
# The lookbehind stops a match from starting in the middle of another token.
_ATTRIBUTE_RE = re.compile(
    r"""(?<![\w\-.:"'=])([A-Za-z_][\w\-.:]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""",
    re.DOTALL,
)


def parse_attributes(attribute_string: str, allowed_names: Iterable[str]) -> dict[str, str]:
    """Parse a tag's attribute string into a name -> value mapping.

    Only names in ``allowed_names`` are kept. Unquoted or otherwise malformed
    pairs are skipped, so a partially broken tag still yields whatever parsed
    cleanly. When a name repeats, the last value wins.

    Example:
        >>> parse_attributes('path="src/app.py" mode=fast', ["path", "mode"])
        {'path': 'src/app.py'}
    """
    allowed = set(allowed_names)
    result: dict[str, str] = {}
    if not attribute_string or not allowed:
        return result

    for match in _ATTRIBUTE_RE.finditer(attribute_string):
        name = match.group(1)
        if name not in allowed:
            continue
        value = match.group(2) if match.group(2) is not None else match.group(3)
        result[name] = value
    return result
