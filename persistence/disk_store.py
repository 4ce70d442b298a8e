from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from json_store import (
    advance_mtime,
    atomic_write_json,
    load_json,
    mtime_ms,
    read_json,
    remove_quietly,
    stage_json,
    tmp_path_for,
)

from .documents import BatchCommitResult, BatchEntry, ReadResult, WriteResult
from .errors import FailureKind, InvalidDocumentNameError, PartialCommitError, StagingError, StoreError
from .folder_config import FolderConfigRepository
from .interfaces import DocumentStore
from .locks import GLOBAL_PATH_LOCKS
from .paths import ensure_dir, resolve_document_path

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_TOLERANCE_MS = 50


class SharedFolderDocumentStore(DocumentStore):
    """
    Stores named JSON documents in the configured shared folder.

    - Versions are file modification times in integer milliseconds.
    - Writes are conditional on the caller's last-seen version (OCC); nothing
      is locked across processes, conflicting edits are only detected.
    - Without a configured folder every read is empty and every write fails.
    """

    def __init__(
        self,
        folder_config: FolderConfigRepository,
        *,
        conflict_tolerance_ms: int = DEFAULT_CONFLICT_TOLERANCE_MS,
    ):
        self._folder_config = folder_config
        self._tolerance_ms = int(conflict_tolerance_ms)

    @property
    def conflict_tolerance_ms(self) -> int:
        return self._tolerance_ms

    def root(self) -> Path | None:
        return self._folder_config.storage_root()

    def is_conflict(self, stored_version: int, expected_version: int) -> bool:
        if expected_version <= 0:
            return False
        return abs(stored_version - expected_version) > self._tolerance_ms

    def read(self, name: str) -> ReadResult:
        root = self.root()
        if root is None:
            return ReadResult(failure=FailureKind.NOT_CONFIGURED)
        try:
            path = resolve_document_path(root, name)
        except InvalidDocumentNameError as e:
            logger.warning("STORE READ: %s", e)
            return ReadResult(failure=FailureKind.IO_FAILURE)

        lock = GLOBAL_PATH_LOCKS.lock_for(path)
        with lock:
            try:
                if not path.exists():
                    return ReadResult()
                content = load_json(path)
                version = mtime_ms(path)
            except (OSError, ValueError) as e:
                logger.warning("STORE READ: failed to read %s: %r", path, e)
                return ReadResult(failure=FailureKind.IO_FAILURE)
        return ReadResult(content=content, version=version)

    def write(self, name: str, content: Any, expected_version: int = 0) -> WriteResult:
        root = self.root()
        if root is None:
            return WriteResult.failed(FailureKind.NOT_CONFIGURED, "No shared folder configured")
        try:
            path = resolve_document_path(root, name)
            ensure_dir(root)
        except InvalidDocumentNameError as e:
            logger.warning("STORE WRITE: %s", e)
            return WriteResult.failed(FailureKind.IO_FAILURE, str(e))
        except OSError as e:
            logger.warning("STORE WRITE: cannot create shared folder %s: %r", root, e)
            return WriteResult.failed(FailureKind.IO_FAILURE, f"Cannot create {root}: {e}")

        lock = GLOBAL_PATH_LOCKS.lock_for(path)
        with lock:
            previous = 0
            try:
                if path.exists():
                    previous = mtime_ms(path)
            except OSError as e:
                logger.warning("STORE WRITE: cannot stat %s: %r", path, e)
                return WriteResult.failed(FailureKind.IO_FAILURE, str(e))

            # A document that doesn't exist yet has nothing to conflict with.
            if previous and self.is_conflict(previous, expected_version):
                logger.warning(
                    "STORE WRITE: conflict on %s (stored=%s expected=%s)", name, previous, expected_version
                )
                # new_version carries the stored version so the caller can show what it conflicts with
                return WriteResult(
                    success=False,
                    conflict=True,
                    new_version=previous,
                    current_content=read_json(path),
                    failure=FailureKind.VERSION_CONFLICT,
                )

            try:
                atomic_write_json(path, content, sort_keys=False)
                new_version = advance_mtime(path, previous)
            except (OSError, TypeError, ValueError) as e:
                logger.warning("STORE WRITE: failed to write %s: %r", path, e)
                return WriteResult.failed(FailureKind.IO_FAILURE, f"Failed to write {name}: {e}")

        logger.debug("STORE WRITE: %s -> %s", name, new_version)
        return WriteResult(success=True, new_version=new_version)

    def batch_commit(
        self,
        entries: Iterable[BatchEntry | tuple[str, Any]],
        expected_versions: Mapping[str, int] | None = None,
    ) -> BatchCommitResult:
        """
        Two-phase commit of several documents.

        Phase 1 stages every entry as `<name>.tmp`; any failure removes all temp
        files and leaves the folder untouched. Phase 2 renames the temp files
        into place one by one: each rename is atomic, the batch as a whole is
        not. A failure there is reported as partial_batch_failure together
        with the names that did land.
        """
        batch = [_coerce_entry(e) for e in entries]
        expected = dict(expected_versions or {})

        root = self.root()
        if root is None:
            return BatchCommitResult.failed(FailureKind.NOT_CONFIGURED, "No shared folder configured")
        if not batch:
            return BatchCommitResult(success=True)

        names = [e.name for e in batch]
        if len(set(names)) != len(names):
            return BatchCommitResult.failed(FailureKind.IO_FAILURE, f"Duplicate document names in batch: {names}")
        try:
            paths = [resolve_document_path(root, n) for n in names]
            ensure_dir(root)
        except InvalidDocumentNameError as e:
            logger.warning("STORE BATCH: %s", e)
            return BatchCommitResult.failed(FailureKind.IO_FAILURE, str(e))
        except OSError as e:
            logger.warning("STORE BATCH: cannot create shared folder %s: %r", root, e)
            return BatchCommitResult.failed(FailureKind.IO_FAILURE, f"Cannot create {root}: {e}")

        with GLOBAL_PATH_LOCKS.hold_all(paths):
            previous: dict[str, int] = {}
            conflicts: list[str] = []
            try:
                for name, path in zip(names, paths):
                    if not path.exists():
                        continue
                    previous[name] = mtime_ms(path)
                    if self.is_conflict(previous[name], expected.get(name, 0)):
                        conflicts.append(name)
            except OSError as e:
                logger.warning("STORE BATCH: cannot stat documents in %s: %r", root, e)
                return BatchCommitResult.failed(FailureKind.IO_FAILURE, str(e))

            if conflicts:
                logger.warning("STORE BATCH: conflict on %s", conflicts)
                return BatchCommitResult.failed(
                    FailureKind.VERSION_CONFLICT,
                    f"Modified by another user: {', '.join(conflicts)}",
                    conflicts=conflicts,
                    current_content=read_json(paths[names.index(conflicts[0])]),
                )

            try:
                staged = _stage_all(batch, paths)
                _commit_all(staged)
            except StoreError as e:
                logger.warning("STORE BATCH: %s (folder=%s)", e, root)
                return BatchCommitResult.failed(e.kind, str(e), committed=getattr(e, "committed", []))

            timestamps: dict[str, int] = {}
            for name, path in zip(names, paths):
                try:
                    timestamps[name] = advance_mtime(path, previous.get(name, 0))
                except OSError as e:
                    logger.warning("STORE BATCH: committed %s but cannot read its version: %r", name, e)

        logger.debug("STORE BATCH: committed %s", timestamps)
        return BatchCommitResult(success=True, timestamps=timestamps)


def _coerce_entry(entry: BatchEntry | tuple[str, Any]) -> BatchEntry:
    if isinstance(entry, BatchEntry):
        return entry
    name, content = entry
    return BatchEntry(name=name, content=content)


def _stage_all(batch: list[BatchEntry], paths: list[Path]) -> list[tuple[str, Path, Path]]:
    staged: list[tuple[str, Path, Path]] = []
    for entry, path in zip(batch, paths):
        try:
            staged.append((entry.name, stage_json(path, entry.content), path))
        except (OSError, TypeError, ValueError) as e:
            for _, tmp, _ in staged:
                remove_quietly(tmp)
            remove_quietly(tmp_path_for(path))
            raise StagingError(entry.name, e) from e
    return staged


def _commit_all(staged: list[tuple[str, Path, Path]]) -> list[str]:
    committed: list[str] = []
    for i, (name, tmp, final) in enumerate(staged):
        try:
            tmp.replace(final)
        except OSError as e:
            for _, leftover, _ in staged[i:]:
                remove_quietly(leftover)
            raise PartialCommitError(name, committed, e) from e
        committed.append(name)
    return committed
