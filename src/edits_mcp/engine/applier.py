"""Patch applier: writes reconciled changes under a project root.

Each change is classified as created, modified, ignored or invalid. Expected
failures (ignored paths, malformed paths, drift, patches for missing files)
never raise; unexpected I/O errors such as permission failures propagate.

Concurrency:
- Changes to different paths run concurrently, at most ``max_concurrency`` at once
- Changes to the same file are serialized in input order by a per-path
  asyncio.Lock keyed on the normalized path (``a.py`` and ``./a.py`` share
  one) that lives only for one ``apply()`` call
- If one change raises, changes that have not started are cancelled
- Blocking filesystem calls run in worker threads (``asyncio.to_thread``)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from enum import Enum
from pathlib import Path

from .config import ApplierConfig
from .exceptions import PatchApplyError, PatchFormatError
from .fs import FileSystem, LocalFileSystem, PathResolver
from .ignore import GitignorePredicate, IgnorePredicate, path_key
from .models import ApplyOutcome, ChangeKind, ReconciledChange
from .textdiff import apply_unified_patch

logger = logging.getLogger(__name__)


class ApplyStatus(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    IGNORED = "ignored"
    INVALID = "invalid"


class PatchApplier:
    """
    Applies ReconciledChange objects to the filesystem.

    Usage:
        applier = PatchApplier()
        outcome = await applier.apply("/path/to/project", changes)
        for path in outcome.invalid:
            print(path, outcome.reasons[path])
    """

    def __init__(
        self,
        fs: FileSystem | None = None,
        ignore: IgnorePredicate | None = None,
        config: ApplierConfig | None = None,
    ) -> None:
        self._config = config if config is not None else ApplierConfig()
        self._fs = fs if fs is not None else LocalFileSystem(encoding=self._config.encoding)
        if ignore is None:
            ignore = GitignorePredicate(
                respect_gitignore=self._config.respect_gitignore,
                extra_patterns=self._config.exclude_patterns,
            )
        self._ignore = ignore

    async def apply(
        self, project_root: str | Path, changes: Sequence[ReconciledChange]
    ) -> ApplyOutcome:
        """Apply ``changes`` and classify every distinct path exactly once.

        Several changes to one path are applied in order and collapse to a
        single classification: invalid if any of them failed, otherwise
        created if the file did not exist before the first change, otherwise
        modified (or ignored).
        """
        root = Path(project_root)
        locks: dict[str, asyncio.Lock] = {}
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def run(change: ReconciledChange) -> tuple[ApplyStatus, str | None]:
            lock = locks.setdefault(path_key(change.path), asyncio.Lock())
            async with lock:
                async with semaphore:
                    return await self._apply_one(root, change)

        tasks = [asyncio.create_task(run(change)) for change in changes]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # Changes still waiting for a lock or the semaphore never start
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        per_path: dict[str, list[tuple[ApplyStatus, str | None]]] = {}
        for change, result in zip(changes, results):
            per_path.setdefault(change.path, []).append(result)

        outcome = ApplyOutcome()
        for path, path_results in per_path.items():
            status, reason = self._merge(path_results)
            if status == ApplyStatus.CREATED:
                outcome.created.append(path)
            elif status == ApplyStatus.MODIFIED:
                outcome.modified.append(path)
            elif status == ApplyStatus.IGNORED:
                outcome.ignored.append(path)
            else:
                outcome.invalid.append(path)
            if reason is not None:
                outcome.reasons[path] = reason

        logger.info(
            f"Applied {len(changes)} change(s): {len(outcome.created)} created, "
            f"{len(outcome.modified)} modified, {len(outcome.ignored)} ignored, "
            f"{len(outcome.invalid)} invalid"
        )
        return outcome

    @staticmethod
    def _merge(results: list[tuple[ApplyStatus, str | None]]) -> tuple[ApplyStatus, str | None]:
        for status, reason in results:
            if status == ApplyStatus.INVALID:
                return status, reason
        for status, reason in results:
            if status == ApplyStatus.IGNORED:
                return status, reason
        return results[0]

    async def _apply_one(
        self, root: Path, change: ReconciledChange
    ) -> tuple[ApplyStatus, str | None]:
        path = change.path

        # The predicate runs first: an ignored path is never touched.
        try:
            ignored = self._ignore(path, root)
        except Exception as e:
            logger.warning(f"Rejected {path!r}: {e}")
            return ApplyStatus.INVALID, f"Ignore check failed: {e}"
        if ignored:
            logger.info(f"Skipped ignored path: {path}")
            return ApplyStatus.IGNORED, "Path matches ignore rules"

        resolved = PathResolver.resolve_within(root, path)
        if resolved.is_failure:
            logger.warning(f"Rejected {path!r}: {resolved.error}")
            return ApplyStatus.INVALID, resolved.error
        full_path = resolved.unwrap()

        if await asyncio.to_thread(self._fs.is_dir, full_path):
            return ApplyStatus.INVALID, f"Path is a directory: {path}"

        exists = await asyncio.to_thread(self._fs.exists, full_path)

        if not exists:
            if change.kind == ChangeKind.PATCH:
                logger.warning(f"Rejected patch for missing file: {path}")
                return ApplyStatus.INVALID, "Cannot apply a patch to a file that does not exist"
            await asyncio.to_thread(self._fs.mkdir_recursive, full_path.parent)
            await asyncio.to_thread(self._fs.write_file, full_path, change.content)
            logger.info(f"Created {path}")
            return ApplyStatus.CREATED, None

        if change.kind == ChangeKind.FULL_FILE:
            await asyncio.to_thread(self._fs.write_file, full_path, change.content)
            logger.info(f"Wrote {path}")
            return ApplyStatus.MODIFIED, None

        current = await asyncio.to_thread(self._fs.read_file, full_path)
        try:
            updated = apply_unified_patch(current, change.content)
        except (PatchApplyError, PatchFormatError) as e:
            logger.warning(f"Patch for {path} does not apply to the file on disk: {e}")
            return ApplyStatus.INVALID, f"Patch does not apply: {e}"

        await asyncio.to_thread(self._fs.write_file, full_path, updated)
        logger.info(f"Patched {path}")
        return ApplyStatus.MODIFIED, None
