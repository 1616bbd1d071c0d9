"""Tests for elision expansion and edit-body reconstruction."""

import pytest

from edits_mcp.engine import ElisionError, EditExpander, ExpanderConfig, ReconcileError, strip_code_fence

OLD = (
    "import os\n"
    "\n"
    "def a():\n"
    "    return 1\n"
    "\n"
    "def b():\n"
    "    return 2\n"
    "\n"
    "def c():\n"
    "    return 3\n"
)


@pytest.fixture
def expander() -> EditExpander:
    return EditExpander()


def test_marker_between_literal_lines(expander):
    assert expander.expand("A\nB\nC\n", "A\n// ... existing code ...\nC\nD\n") == "A\nB\nC\nD\n"


def test_markers_around_edited_function(expander):
    """The edited line itself anchors the trailing marker by similarity."""
    body = "# ... existing code ...\ndef b():\n    return 20\n# ... existing code ...\n"

    assert expander.expand(OLD, body) == OLD.replace("return 2\n", "return 20\n")


def test_marker_at_start(expander):
    body = "# ... existing code ...\ndef b():\n    return 20\n\ndef c():\n    return 3\n"

    assert expander.expand(OLD, body) == OLD.replace("return 2\n", "return 20\n")


def test_marker_at_end(expander):
    body = "import sys\n\ndef a():\n    return 1\n# ... rest of the file unchanged ...\n"

    assert expander.expand(OLD, body) == OLD.replace("import os", "import sys")


def test_consecutive_markers_elide_one_region(expander):
    body = "import os\n# ... existing code ...\n// ... existing code ...\n"

    assert expander.expand("import os\nx = 1\n", body) == "import os\nx = 1\n"


def test_literal_text_copied_byte_for_byte(expander):
    body = "# ... existing code ...\ndef b():\n    x  =  2  # spaced\n    return 2\n# ... existing code ...\n"

    result = expander.expand(OLD, body)

    assert "    x  =  2  # spaced\n    return 2\n" in result
    assert result.startswith("import os\n\ndef a():\n    return 1\n\ndef b():\n")
    assert result.endswith("\ndef c():\n    return 3\n")


def test_ambiguous_region_rejected(expander):
    old = "x = 1\ny = 2\nx = 1\ny = 2\n"
    body = "# ... existing code ...\nx = 1\nz = 3\n"

    with pytest.raises(ElisionError) as exc_info:
        expander.expand(old, body, path="dup.py")

    assert exc_info.value.reason == "ambiguous"
    assert exc_info.value.path == "dup.py"
    assert exc_info.value.marker_line == 1


def test_unanchored_marker_rejected(expander):
    body = "def zzz():\n    pass\n# ... existing code ...\n"

    with pytest.raises(ElisionError) as exc_info:
        expander.expand(OLD, body)

    assert exc_info.value.reason == "no_anchor"
    assert exc_info.value.marker_line == 3


def test_new_file_with_marker_rejected(expander):
    with pytest.raises(ElisionError) as exc_info:
        expander.expand(None, "x = 1\n# ... existing code ...\n")

    assert exc_info.value.reason == "new_file"


def test_new_file_without_marker_is_body(expander):
    assert expander.expand(None, "x = 1\n") == "x = 1\n"


def test_full_file_without_marker_is_body(expander):
    assert expander.expand(OLD, "completely\nnew\n") == "completely\nnew\n"


def test_crlf_old_content_round_trips(expander):
    old = "a\r\nb\r\nc\r\n"
    body = "# ... existing code ...\r\nb\r\nB2\r\nc\r\n"

    assert expander.expand(old, body) == "a\r\nb\r\nB2\r\nc\r\n"


def test_code_fence_stripped(expander):
    assert expander.expand(None, "```python\nx = 1\n```") == "x = 1\n"


def test_code_fence_kept_when_disabled():
    expander = EditExpander(ExpanderConfig(strip_code_fences=False))

    assert expander.expand(None, "```\nx = 1\n```\n") == "```\nx = 1\n```\n"


def test_unified_diff_body(expander):
    body = "@@ -6,2 +6,2 @@\n def b():\n-    return 2\n+    return 20\n"

    assert expander.expand(OLD, body) == OLD.replace("return 2\n", "return 20\n")


def test_unified_diff_for_new_file(expander):
    assert expander.expand(None, "@@ -0,0 +1,2 @@\n+a\n+b\n") == "a\nb\n"


def test_unified_diff_that_does_not_apply(expander):
    body = "@@ -1,1 +1,1 @@\n-not in the file\n+replacement\n"

    with pytest.raises(ReconcileError) as exc_info:
        expander.expand(OLD, body, path="x.py")

    assert exc_info.value.path == "x.py"


def test_expansion_is_deterministic(expander):
    body = "# ... existing code ...\ndef b():\n    return 20\n# ... existing code ...\n"

    assert expander.expand(OLD, body) == expander.expand(OLD, body)


@pytest.mark.parametrize(
    "line",
    [
        "// ... existing code ...",
        "# ... rest of the file ...",
        "    /* ... */",
        "<!-- ... -->",
        "# ...",
        "{/* ... existing code ... */}",
        "-- ... unchanged ...",
        "// existing code",
        "  # ... other methods unchanged ...\n",
    ],
)
def test_marker_lines_recognized(expander, line):
    assert expander.is_marker(line)


@pytest.mark.parametrize(
    "line",
    [
        "x = 1  # ... existing code ...",
        "# TODO: existing behaviour",
        "print('...')",
        "...",
        "# ... but the logic here is new",
    ],
)
def test_non_marker_lines(expander, line):
    assert not expander.is_marker(line)


def test_strip_code_fence():
    assert strip_code_fence("```python\nx = 1\n```") == "x = 1\n"
    assert strip_code_fence("\n```\na\nb\n```\n") == "a\nb\n"
    assert strip_code_fence("```\n```") == ""
    assert strip_code_fence("no fence\n") == "no fence\n"
    assert strip_code_fence("```\nunterminated\n") == "```\nunterminated\n"
