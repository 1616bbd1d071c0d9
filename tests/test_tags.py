"""Tests for TagDescriptor and TagRegistry."""

import pytest

from edits_mcp.engine import ScannerConfig, TagDescriptor, TagRegistry, TagRegistryError, TagStreamScanner


def test_register_and_get():
    registry = TagRegistry([TagDescriptor("write_file", ("path",))])
    assert registry.has("write_file")
    assert registry.get("write_file").attribute_names == ("path",)
    assert registry.get("write_file").close_tag == "</write_file>"
    assert len(registry) == 1


def test_duplicate_name_rejected():
    with pytest.raises(TagRegistryError, match="already registered"):
        TagRegistry([TagDescriptor("file"), TagDescriptor("file")])


@pytest.mark.parametrize("name", ["", "1file", "write file", "a<b", "x>"])
def test_invalid_name_rejected(name):
    with pytest.raises(TagRegistryError):
        TagRegistry([TagDescriptor(name)])


def test_invalid_attribute_name_rejected():
    with pytest.raises(TagRegistryError, match="invalid attribute name"):
        TagRegistry([TagDescriptor("file", ("path", "bad name"))])


def test_duplicate_attribute_name_rejected():
    with pytest.raises(TagRegistryError, match="duplicate attribute name"):
        TagRegistry([TagDescriptor("file", ("path", "path"))])


def test_non_callable_callback_rejected():
    with pytest.raises(TagRegistryError, match="callable"):
        TagRegistry([TagDescriptor("file", on_end="nope")])  # type: ignore[arg-type]


def test_unknown_tag_lookup():
    registry = TagRegistry([TagDescriptor("file")])
    with pytest.raises(TagRegistryError, match="unknown tag"):
        registry.get("write_file")


def test_frozen_registry_rejects_registration():
    registry = TagRegistry([TagDescriptor("file")])
    registry.freeze()
    assert registry.frozen
    with pytest.raises(TagRegistryError, match="frozen"):
        registry.register(TagDescriptor("write_file"))


def test_empty_registry_cannot_be_frozen():
    with pytest.raises(TagRegistryError, match="no tags"):
        TagRegistry().freeze()


def test_scanner_freezes_registry():
    registry = TagRegistry([TagDescriptor("file")])
    TagStreamScanner(registry)
    assert registry.frozen


def test_scanner_rejects_window_shorter_than_close_tag():
    registry = TagRegistry([TagDescriptor("a_rather_long_tag_name")])
    with pytest.raises(TagRegistryError, match="lookback window"):
        TagStreamScanner(registry, ScannerConfig(lookback_window=16))


def test_from_mapping():
    ended = []
    registry = TagRegistry.from_mapping(
        {
            "write_file": {
                "attribute_names": ["path"],
                "on_end": lambda content, attrs: ended.append(content) or False,
            },
            "note": {},
        }
    )
    assert registry.list_names() == ["write_file", "note"]
    assert registry.get("write_file").attribute_names == ("path",)
    assert registry.get("note").on_end("x", {}) is False
    registry.get("write_file").on_end("body", {})
    assert ended == ["body"]
