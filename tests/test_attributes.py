"""Tests for tag attribute parsing."""

from edits_mcp.engine import parse_attributes


def test_double_quoted_value():
    assert parse_attributes('path="src/app.py"', ["path"]) == {"path": "src/app.py"}


def test_single_quoted_value():
    assert parse_attributes("path='src/app.py'", ["path"]) == {"path": "src/app.py"}


def test_multiple_attributes():
    result = parse_attributes(' path="a.py" mode="append"', ["path", "mode"])
    assert result == {"path": "a.py", "mode": "append"}


def test_unknown_attributes_ignored():
    result = parse_attributes('path="a.py" color="blue"', ["path"])
    assert result == {"path": "a.py"}


def test_unquoted_value_skipped_but_rest_parsed():
    """A malformed pair does not prevent the others from parsing."""
    result = parse_attributes('path=src/app.py mode="x"', ["path", "mode"])
    assert result == {"mode": "x"}


def test_repeated_name_last_wins():
    assert parse_attributes('path="first" path="second"', ["path"]) == {"path": "second"}


def test_value_with_special_characters():
    value = 'a=b > c & d \\ e\nnext line ünïcödé'
    assert parse_attributes(f'path="{value}"', ["path"]) == {"path": value}


def test_spaces_around_equals():
    assert parse_attributes('path = "a.py"', ["path"]) == {"path": "a.py"}


def test_empty_string():
    assert parse_attributes("", ["path"]) == {}


def test_no_allowed_names():
    assert parse_attributes('path="a.py"', []) == {}


def test_name_inside_other_value_not_matched():
    """An attribute-looking fragment inside a quoted value is not a separate attribute."""
    result = parse_attributes("title='x path=\"evil\"' path=\"real\"", ["path", "title"])
    assert result["path"] == "real"
