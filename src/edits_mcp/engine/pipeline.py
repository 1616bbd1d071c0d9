"""Turn pipeline: model output stream in, files on disk and a TurnResult out.

Flow per turn:
    chunks -> TagStreamScanner -> edit tag bodies -> EditExpander
           -> RepresentationChooser -> ChangeLedger -> PatchApplier

Edits are reconciled as soon as their close tag arrives; all changes are
applied together once the stream ends (or the scan terminates early).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from contextlib import aclosing
from pathlib import Path

from .applier import PatchApplier
from .chooser import RepresentationChooser
from .config import PipelineConfig
from .exceptions import ReconcileError
from .expander import EditExpander
from .fs import FileSystem, LocalFileSystem, PathResolver
from .ignore import GitignorePredicate, IgnorePredicate, path_key
from .ledger import ChangeLedger
from .models import EditRecord, ReconciledChange, TurnResult
from .scanner import TagClosed, TagIncomplete, TextSegment, ascan
from .tags import TagDescriptor, TagRegistry

logger = logging.getLogger(__name__)

EDIT_PATH_ATTRIBUTE = "path"


def edit_body(content: str) -> str:
    """Drop the line break that follows the open tag (``<write_file path="x">\\n``)."""
    if content.startswith("\r\n"):
        return content[2:]
    if content.startswith("\n"):
        return content[1:]
    return content


class EditPipeline:
    """
    Runs one assistant turn through the edit-reconciliation pipeline.

    Usage:
        pipeline = EditPipeline("/path/to/project", config=config, ledger=ledger)
        ledger.start_turn()
        result = await pipeline.process_stream(model_chunks)
        print(result.outcome.modified)
    """

    def __init__(
        self,
        project_root: str | Path,
        config: PipelineConfig | None = None,
        fs: FileSystem | None = None,
        ignore: IgnorePredicate | None = None,
        ledger: ChangeLedger | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.config = config if config is not None else PipelineConfig()
        self.fs = fs if fs is not None else LocalFileSystem(encoding=self.config.applier.encoding)
        if ignore is None:
            ignore = GitignorePredicate(
                respect_gitignore=self.config.applier.respect_gitignore,
                extra_patterns=self.config.applier.exclude_patterns,
            )
        self.ignore = ignore
        self.ledger = ledger if ledger is not None else ChangeLedger()
        self.expander = EditExpander(self.config.expander)
        self.chooser = RepresentationChooser(self.config.chooser)
        self.applier = PatchApplier(fs=self.fs, ignore=self.ignore, config=self.config.applier)

    def build_registry(self, stop_after_first_edit: bool = False) -> TagRegistry:
        """Registry of the configured edit tags.

        Edit bodies are never flushed speculatively: reconciliation needs the
        complete body.
        """

        def on_end(content: str, attributes: dict[str, str]) -> bool:
            return stop_after_first_edit

        return TagRegistry(
            TagDescriptor(
                name=name,
                attribute_names=(EDIT_PATH_ATTRIBUTE,),
                on_end=on_end,
                unbounded_body=True,
            )
            for name in self.config.edit_tags
        )

    # ------------------------------------------------------------------
    # Single edit
    # ------------------------------------------------------------------

    def reconcile(self, record: EditRecord) -> ReconciledChange:
        """Expand an edit and choose its representation.

        Raises:
            ReconcileError: The edit body cannot be turned into final content
        """
        change, _ = self.expand_and_choose(record)
        return change

    def expand_and_choose(self, record: EditRecord) -> tuple[ReconciledChange, str]:
        """Like ``reconcile()``, also returning the complete new content."""
        expanded = self.expander.expand(
            record.old_content, record.raw_new_representation, path=record.file_path
        )
        return self.chooser.choose(record.file_path, record.old_content, expanded), expanded

    def read_old_content(self, path: str) -> str | None:
        """Current content of ``path``; None when missing or not resolvable."""
        resolved = PathResolver.resolve_within(self.project_root, path)
        if resolved.is_failure:
            logger.debug(f"Cannot read {path!r}: {resolved.error}")
            return None
        full_path = resolved.unwrap()
        if not self.fs.exists(full_path):
            return None
        return self.fs.read_file(full_path)

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    async def _chunks(self, source: Iterable[str] | AsyncIterable[str]) -> AsyncIterator[str]:
        """Yield from a sync or async source, then close it."""
        first = True
        if isinstance(source, AsyncIterable):
            async_iterator = aiter(source)
            try:
                async for chunk in async_iterator:
                    if first:
                        self.ledger.received_model_output()
                        first = False
                    yield chunk
            finally:
                aclose = getattr(async_iterator, "aclose", None)
                if aclose is not None:
                    await aclose()
        else:
            iterator = iter(source)
            try:
                for chunk in iterator:
                    if first:
                        self.ledger.received_model_output()
                        first = False
                    yield chunk
            finally:
                close = getattr(iterator, "close", None)
                if callable(close):
                    close()

    async def process_stream(
        self,
        chunks: Iterable[str] | AsyncIterable[str],
        stop_after_first_edit: bool = False,
    ) -> TurnResult:
        """Scan a model response, reconcile its edits and apply them.

        Per-file reconciliation failures are reported in ``failures`` and do
        not stop other files. Returns once every change has been applied.
        """
        registry = self.build_registry(stop_after_first_edit=stop_after_first_edit)
        result = TurnResult()
        text_parts: list[str] = []
        changes: list[ReconciledChange] = []
        # Content each file (by normalized path) will have after the changes seen so far
        pending: dict[str, str | None] = {}
        edits_seen = 0

        events = ascan(self._chunks(chunks), registry, self.config.scanner)
        async with aclosing(events):
            async for event in events:
                if isinstance(event, TextSegment):
                    text_parts.append(event.text)
                elif isinstance(event, TagClosed):
                    edits_seen += 1
                    await self._handle_edit(event, pending, changes, result)
                elif isinstance(event, TagIncomplete):
                    label = event.attributes.get(EDIT_PATH_ATTRIBUTE) or event.name
                    logger.warning(f"Edit for {label} was cut off before </{event.name}>")
                    result.incomplete_tags.append(label)

        result.text = "".join(text_parts)
        result.changes = changes
        result.terminated_early = stop_after_first_edit and edits_seen > 0

        if changes:
            result.outcome = await self.applier.apply(self.project_root, changes)
        return result

    async def _handle_edit(
        self,
        event: TagClosed,
        pending: dict[str, str | None],
        changes: list[ReconciledChange],
        result: TurnResult,
    ) -> None:
        path = event.attributes.get(EDIT_PATH_ATTRIBUTE)
        if not path:
            logger.warning(f"<{event.name}> without a path attribute skipped")
            result.failures[f"<{event.name}>"] = "Edit tag has no path attribute"
            return

        key = path_key(path)
        if key in pending:
            old_content = pending[key]
        else:
            old_content = await asyncio.to_thread(self.read_old_content, path)

        record = EditRecord(
            file_path=path,
            old_content=old_content,
            raw_new_representation=edit_body(event.content),
        )
        try:
            change, expanded = self.expand_and_choose(record)
        except ReconcileError as e:
            logger.warning(f"Could not reconcile edit for {path}: {e}")
            result.failures[path] = str(e)
            return

        if change.is_noop(old_content):
            logger.info(f"No change to {path}")
            if path not in result.unchanged:
                result.unchanged.append(path)
            return

        pending[key] = expanded
        self.ledger.record_change(change)
        changes.append(change)
