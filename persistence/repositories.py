from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from typing import Any, Iterable, Mapping, Protocol

from .documents import BatchCommitResult, BatchEntry, ReadResult, WriteResult
from .errors import FailureKind
from .interfaces import DocumentStore
from .version_cache import VersionCache

logger = logging.getLogger(__name__)


class AsyncDocumentStore(Protocol):
    async def read(self, name: str) -> ReadResult: ...
    async def write(self, name: str, content: Any, expected_version: int = 0) -> WriteResult: ...
    async def batch_commit(
        self,
        entries: Iterable[BatchEntry],
        expected_versions: Mapping[str, int] | None = None,
    ) -> BatchCommitResult: ...


class AsyncSharedFolderStore(AsyncDocumentStore):
    """
    Async wrapper around the shared-folder store.
    Uses asyncio.to_thread to avoid blocking the event loop on file I/O.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def read(self, name: str) -> ReadResult:
        return await asyncio.to_thread(self._store.read, name)

    async def write(self, name: str, content: Any, expected_version: int = 0) -> WriteResult:
        return await asyncio.to_thread(self._store.write, name, content, expected_version)

    async def batch_commit(
        self,
        entries: Iterable[BatchEntry],
        expected_versions: Mapping[str, int] | None = None,
    ) -> BatchCommitResult:
        return await asyncio.to_thread(self._store.batch_commit, list(entries), expected_versions)


class DocumentSyncClient:
    """
    Store access that keeps a VersionCache in step with what this client has
    read and written, and supplies the cached versions as write preconditions.
    """

    def __init__(self, store: DocumentStore | AsyncDocumentStore, *, cache: VersionCache | None = None) -> None:
        if inspect.iscoroutinefunction(getattr(store, "read", None)):
            self._store: AsyncDocumentStore = store  # type: ignore[assignment]
        else:
            self._store = AsyncSharedFolderStore(store)  # type: ignore[arg-type]
        self._cache = cache if cache is not None else VersionCache()

    @property
    def cache(self) -> VersionCache:
        return self._cache

    async def read_result(self, name: str) -> ReadResult:
        result = await self._store.read(name)
        if result.failure is None:
            self._cache.set(name, result.version)
        return result

    async def read(self, name: str, default: Any = None) -> tuple[Any, int]:
        result = await self.read_result(name)
        if result.content is None:
            return copy.deepcopy(default), result.version
        return result.content, result.version

    async def write(self, name: str, content: Any, *, force: bool = False) -> WriteResult:
        expected = 0 if force else self._cache.get(name)
        result = await self._store.write(name, content, expected)
        if result.success:
            self._cache.set(name, result.new_version)
        return result

    async def commit(
        self,
        entries: Iterable[BatchEntry | tuple[str, Any]],
        *,
        preconditions: Iterable[str] | None = None,
        force: bool = False,
    ) -> BatchCommitResult:
        """
        Batch-commit entries. Names in `preconditions` (default: every entry)
        must still be at their cached version; `force` drops all checks.
        """
        batch = [e if isinstance(e, BatchEntry) else BatchEntry(name=e[0], content=e[1]) for e in entries]
        checked = [e.name for e in batch] if preconditions is None else list(preconditions)
        expected: dict[str, int] = {}
        if not force:
            expected = {n: self._cache.get(n) for n in checked if self._cache.get(n) > 0}

        result = await self._store.batch_commit(batch, expected)
        if result.success:
            for name, version in result.timestamps.items():
                self._cache.set(name, version)
        elif result.failure == FailureKind.PARTIAL_BATCH_FAILURE:
            # These already hold our content; their new versions are unknown.
            for name in result.committed:
                self._cache.invalidate(name)
            logger.warning("SYNC COMMIT: partial batch, committed=%s error=%s", result.committed, result.error)
        return result

    def invalidate(self, name: str) -> None:
        self._cache.invalidate(name)
