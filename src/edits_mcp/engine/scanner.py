"""Streaming tag scanner.

Turns an incremental stream of text chunks into plain-text segments and tag
events without buffering the whole stream.

Architecture:
- TagStreamScanner is an explicit state machine: the caller's read loop pushes
  each chunk with ``step(chunk)`` and gets back the events that chunk completed,
  then calls ``finish()`` at end of stream
- One scanner per stream; a finished scanner cannot be reused
- ``scan()`` / ``ascan()`` drive a scanner over a sync / async source and close
  the source when scanning ends, including early termination

Buffering:
- Outside a tag, text is held back only while it could still become an open
  tag: a name prefix within ``lookback_window`` characters of the end, or an
  open tag whose attributes are still arriving, up to ``max_open_tag_length``
- Inside a tag, the body is held until the close tag. Past
  ``body_buffer_multiple * lookback_window`` characters the older part is
  emitted as TagBodyChunk and on_end later sees only the tail, unless the tag
  was registered with ``unbounded_body=True``

Every event carries ``source_text``; joining it across all events reproduces the
input exactly, for any chunking.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Union

from .attributes import parse_attributes
from .config import ScannerConfig
from .exceptions import IncompleteTagError, TagRegistryError
from .tags import TagDescriptor, TagRegistry

logger = logging.getLogger(__name__)


# ============================================================================
# Events
# ============================================================================


@dataclass(frozen=True)
class TextSegment:
    """Plain text outside any registered tag."""

    text: str

    @property
    def source_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class TagOpened:
    """A registered open tag was recognized."""

    name: str
    attributes: dict[str, str] = field(hash=False)
    raw: str = ""

    @property
    def source_text(self) -> str:
        return self.raw


@dataclass(frozen=True)
class TagBodyChunk:
    """Part of a large tag body emitted before its close tag arrived."""

    name: str
    text: str

    @property
    def source_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class TagClosed:
    """A tag was closed. ``content`` is the body not already sent as TagBodyChunk."""

    name: str
    content: str
    attributes: dict[str, str] = field(hash=False)
    raw: str = ""

    @property
    def source_text(self) -> str:
        return self.content + self.raw


@dataclass(frozen=True)
class TagIncomplete:
    """The stream ended while a tag was still open."""

    name: str
    content: str
    attributes: dict[str, str] = field(hash=False)

    @property
    def source_text(self) -> str:
        return self.content


ScanEvent = Union[TextSegment, TagOpened, TagBodyChunk, TagClosed, TagIncomplete]


@dataclass(frozen=True)
class ScanState:
    """Snapshot of a scanner's internal state."""

    buffer: str
    inside_tag: str | None
    current_attributes: dict[str, str]


# ============================================================================
# Scanner
# ============================================================================


def _open_tag_pattern(names: list[str]) -> re.Pattern[str]:
    # Longest names first so that "file" never shadows "file_edit".
    alternatives = "|".join(re.escape(n) for n in sorted(names, key=len, reverse=True))
    return re.compile(
        rf"""<(?P<name>{alternatives})(?P<attrs>(?:\s(?:"[^"]*"|'[^']*'|[^"'>])*)?)>"""
    )


class TagStreamScanner:
    """
    Pull-based tag scanner.

    Usage:
        scanner = TagStreamScanner(registry)
        for chunk in stream:
            for event in scanner.step(chunk):
                handle(event)
            if scanner.terminated:
                break
        for event in scanner.finish():
            handle(event)
    """

    def __init__(self, registry: TagRegistry, config: ScannerConfig | None = None) -> None:
        self._config = config if config is not None else ScannerConfig()
        registry.freeze()
        self._registry = registry
        self._window = self._config.lookback_window
        self._body_limit = self._window * self._config.body_buffer_multiple
        self._open_limit = max(self._window, self._config.max_open_tag_length)

        longest_close = max(len(d.close_tag) for d in registry)
        if self._window < longest_close:
            raise TagRegistryError(
                max(registry, key=lambda d: len(d.close_tag)).name,
                f"close tag longer than lookback window ({self._window})",
            )

        self._open_re = _open_tag_pattern(registry.list_names())
        self._names = registry.list_names()

        self._buffer = ""
        self._inside: TagDescriptor | None = None
        self._attributes: dict[str, str] = {}
        self._close_search_from = 0
        self._body_flushed = False
        self._terminated = False
        self._finished = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def terminated(self) -> bool:
        """True once an on_end callback asked to stop scanning."""
        return self._terminated

    @property
    def state(self) -> ScanState:
        return ScanState(
            buffer=self._buffer,
            inside_tag=self._inside.name if self._inside else None,
            current_attributes=dict(self._attributes),
        )

    def step(self, chunk: str) -> list[ScanEvent]:
        """Consume one chunk and return the events it completed."""
        if self._finished:
            raise RuntimeError("Scanner already finished; create a new scanner per stream")
        if self._terminated or not chunk:
            return []

        events: list[ScanEvent] = []
        self._buffer += chunk
        self._advance(events)
        return events

    def finish(self) -> list[ScanEvent]:
        """Signal end of stream and return the remaining events."""
        if self._finished:
            return []
        self._finished = True
        if self._terminated:
            self._buffer = ""
            return []

        events: list[ScanEvent] = []
        if self._inside is not None:
            logger.warning(
                f"Stream ended inside <{self._inside.name}> "
                f"({len(self._buffer)} characters buffered)"
            )
            events.append(
                TagIncomplete(
                    name=self._inside.name,
                    content=self._buffer,
                    attributes=dict(self._attributes),
                )
            )
        elif self._buffer:
            events.append(TextSegment(self._buffer))
        self._buffer = ""
        self._inside = None
        self._attributes = {}
        return events

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _advance(self, events: list[ScanEvent]) -> None:
        while not self._terminated:
            if self._inside is None:
                if not self._scan_outside(events):
                    return
            else:
                if not self._scan_inside(events):
                    return

    def _scan_outside(self, events: list[ScanEvent]) -> bool:
        """Look for an open tag. Returns True if the state changed to inside a tag."""
        match = self._open_re.search(self._buffer)
        if match is not None:
            if match.start() > 0:
                events.append(TextSegment(self._buffer[: match.start()]))

            descriptor = self._registry.get(match.group("name"))
            attributes = parse_attributes(match.group("attrs"), descriptor.attribute_names)
            raw = match.group(0)

            self._buffer = self._buffer[match.end() :]
            self._inside = descriptor
            self._attributes = attributes
            self._close_search_from = 0
            self._body_flushed = False

            logger.debug(f"Opened <{descriptor.name}> with attributes {attributes}")
            events.append(TagOpened(name=descriptor.name, attributes=dict(attributes), raw=raw))
            descriptor.on_start(dict(attributes))
            return True

        keep_from = self._pending_open_start()
        if keep_from is None:
            if self._buffer:
                events.append(TextSegment(self._buffer))
            self._buffer = ""
        elif keep_from > 0:
            events.append(TextSegment(self._buffer[:keep_from]))
            self._buffer = self._buffer[keep_from:]
        return False

    def _scan_inside(self, events: list[ScanEvent]) -> bool:
        """Look for the close tag. Returns True if the tag was closed."""
        assert self._inside is not None
        descriptor = self._inside
        close_tag = descriptor.close_tag

        index = self._buffer.find(close_tag, self._close_search_from)
        if index == -1:
            # A close tag split across chunks starts within the last len(close_tag) - 1 chars.
            self._close_search_from = max(0, len(self._buffer) - len(close_tag) + 1)
            if not descriptor.unbounded_body and len(self._buffer) > self._body_limit:
                flush_length = len(self._buffer) - self._window
                events.append(TagBodyChunk(name=descriptor.name, text=self._buffer[:flush_length]))
                self._buffer = self._buffer[flush_length:]
                self._close_search_from = max(0, self._close_search_from - flush_length)
                if not self._body_flushed:
                    logger.debug(
                        f"<{descriptor.name}> body exceeded {self._body_limit} characters, "
                        "flushing speculatively"
                    )
                self._body_flushed = True
            return False

        content = self._buffer[:index]
        attributes = self._attributes
        self._buffer = self._buffer[index + len(close_tag) :]
        self._inside = None
        self._attributes = {}
        self._close_search_from = 0

        events.append(
            TagClosed(
                name=descriptor.name,
                content=content,
                attributes=dict(attributes),
                raw=close_tag,
            )
        )
        if descriptor.on_end(content, dict(attributes)):
            logger.debug(f"<{descriptor.name}> handler requested early termination")
            self._terminated = True
            self._buffer = ""
        return True

    def _pending_open_start(self) -> int | None:
        """Index of the earliest '<' that may still become a registered open tag.

        A '<' followed only by a name prefix sits within the lookback window.
        One followed by a registered name and unfinished attributes is held
        back until it reaches ``max_open_tag_length``.
        """
        lower = max(0, len(self._buffer) - self._open_limit)
        index = self._buffer.find("<", lower)
        while index != -1:
            if self._could_open(self._buffer[index + 1 :]):
                return index
            index = self._buffer.find("<", index + 1)
        return None

    def _could_open(self, tail: str) -> bool:
        for name in self._names:
            if len(tail) < len(name):
                if name.startswith(tail):
                    return True
            elif tail.startswith(name):
                rest = tail[len(name) :]
                if rest == "":
                    return True
                if rest[0].isspace() and _attributes_unfinished(rest):
                    return True
        return False


def _attributes_unfinished(text: str) -> bool:
    """True while ``text`` has no '>' outside a quoted attribute value."""
    quote: str | None = None
    for char in text:
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == ">":
            return False
    return True


# ============================================================================
# Drivers
# ============================================================================


def _check_strict(event: ScanEvent, strict: bool) -> None:
    if strict and isinstance(event, TagIncomplete):
        raise IncompleteTagError(event.name, event.content, event.attributes)


def scan(
    source: Iterable[str],
    registry: TagRegistry,
    config: ScannerConfig | None = None,
    *,
    strict: bool = False,
) -> Iterator[ScanEvent]:
    """Scan a synchronous chunk source, yielding events as they complete.

    The source is closed (if it has ``close()``) when scanning ends, including
    when an on_end callback terminates the scan early or the caller stops
    iterating. With ``strict=True`` an unterminated tag raises
    IncompleteTagError instead of yielding TagIncomplete.
    """
    scanner = TagStreamScanner(registry, config)
    iterator = iter(source)
    try:
        for chunk in iterator:
            yield from scanner.step(chunk)
            if scanner.terminated:
                return
        for event in scanner.finish():
            _check_strict(event, strict)
            yield event
    finally:
        close = getattr(iterator, "close", None)
        if callable(close):
            close()


async def ascan(
    source: AsyncIterable[str],
    registry: TagRegistry,
    config: ScannerConfig | None = None,
    *,
    strict: bool = False,
) -> AsyncIterator[ScanEvent]:
    """Async counterpart of ``scan()``; closes the source with ``aclose()``."""
    scanner = TagStreamScanner(registry, config)
    iterator = aiter(source)
    try:
        async for chunk in iterator:
            for event in scanner.step(chunk):
                yield event
            if scanner.terminated:
                return
        for event in scanner.finish():
            _check_strict(event, strict)
            yield event
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
