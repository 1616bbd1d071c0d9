"""Tag descriptors and the registry the scanner is built from.

A TagRegistry is assembled once before scanning starts. Registration rejects
duplicate names and names the scanner could not match, and the registry is
frozen as soon as a scanner takes it, so the set of tags cannot change while a
stream is being processed.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from .exceptions import TagRegistryError

_TAG_NAME_RE = re.compile(r"^[A-Za-z_][\w\-.:]*$")
_ATTRIBUTE_NAME_RE = re.compile(r"^[A-Za-z_][\w\-.:]*$")

OnTagStart = Callable[[dict[str, str]], None]
OnTagEnd = Callable[[str, dict[str, str]], bool]


def _ignore_start(attributes: dict[str, str]) -> None:
    return None


def _continue_scanning(content: str, attributes: dict[str, str]) -> bool:
    return False


@dataclass(frozen=True)
class TagDescriptor:
    """A recognized tag and its callbacks.

    Attributes:
        name: Tag name as written in the stream (``<name ...>``)
        attribute_names: Attribute names parsed from the open tag
        on_start: Called with the parsed attributes when the open tag is seen
        on_end: Called with the body and attributes at the close tag; returning
            True stops the scan
        unbounded_body: Never flush this tag's body speculatively, so on_end
            always receives the complete body
    """

    name: str
    attribute_names: tuple[str, ...] = ()
    on_start: OnTagStart = field(default=_ignore_start, compare=False)
    on_end: OnTagEnd = field(default=_continue_scanning, compare=False)
    unbounded_body: bool = False

    @property
    def close_tag(self) -> str:
        return f"</{self.name}>"


class TagRegistry:
    """
    Registry of tag descriptors.

    Maps tag names to descriptors. Frozen once handed to a scanner.
    """

    def __init__(self, descriptors: Iterable[TagDescriptor] = ()) -> None:
        self._descriptors: dict[str, TagDescriptor] = {}
        self._frozen = False
        for descriptor in descriptors:
            self.register(descriptor)

    @classmethod
    def from_mapping(cls, tags: Mapping[str, Mapping[str, object]]) -> TagRegistry:
        """Build a registry from ``{name: {attribute_names, on_start, on_end}}``.

        Missing callbacks default to no-ops; ``unbounded_body`` is optional.
        """
        descriptors = []
        for name, spec in tags.items():
            descriptors.append(
                TagDescriptor(
                    name=name,
                    attribute_names=tuple(spec.get("attribute_names", ())),  # type: ignore[arg-type]
                    on_start=spec.get("on_start", _ignore_start),  # type: ignore[arg-type]
                    on_end=spec.get("on_end", _continue_scanning),  # type: ignore[arg-type]
                    unbounded_body=bool(spec.get("unbounded_body", False)),
                )
            )
        return cls(descriptors)

    def register(self, descriptor: TagDescriptor) -> None:
        """Register a descriptor under its name."""
        if self._frozen:
            raise TagRegistryError(descriptor.name, "registry is frozen once scanning starts")
        if not _TAG_NAME_RE.match(descriptor.name):
            raise TagRegistryError(descriptor.name, "not a valid tag name")
        if descriptor.name in self._descriptors:
            raise TagRegistryError(descriptor.name, "already registered")
        seen: set[str] = set()
        for attribute in descriptor.attribute_names:
            if not _ATTRIBUTE_NAME_RE.match(attribute):
                raise TagRegistryError(descriptor.name, f"invalid attribute name {attribute!r}")
            if attribute in seen:
                raise TagRegistryError(descriptor.name, f"duplicate attribute name {attribute!r}")
            seen.add(attribute)
        if not callable(descriptor.on_start) or not callable(descriptor.on_end):
            raise TagRegistryError(descriptor.name, "callbacks must be callable")
        self._descriptors[descriptor.name] = descriptor

    def freeze(self) -> None:
        if not self._descriptors:
            raise TagRegistryError("<none>", "registry has no tags")
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> TagDescriptor:
        """Get descriptor by tag name."""
        if name not in self._descriptors:
            available = list(self._descriptors.keys())
            raise TagRegistryError(name, f"unknown tag. Available: {available}")
        return self._descriptors[name]

    def has(self, name: str) -> bool:
        return name in self._descriptors

    def list_names(self) -> list[str]:
        return list(self._descriptors.keys())

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self._descriptors.values())
