from __future__ import annotations

import asyncio
import copy
import functools
import logging
from enum import Enum
from typing import Any

from .derived import LedgerUpdater
from .documents import BatchCommitResult, BatchEntry
from .errors import FailureKind
from .repositories import DocumentSyncClient
from .serializer import SaveOutcome, SaveSerializer, StillCurrent

logger = logging.getLogger(__name__)

# A save recomputes its ledgers once if another user changed one of them meanwhile.
LEDGER_ATTEMPTS = 2


class SyncState(str, Enum):
    CLEAN = "clean"
    CONFLICTED = "conflicted"


class DocumentSyncSession:
    """
    One primary document being edited by this process.

    Edits replace the in-memory content and queue a save on the shared
    serializer. When a save finds the document changed by someone else the
    session turns CONFLICTED and stops saving until the user picks a side:

    - overwrite(): write the local content without a version check,
    - reload(): drop local edits and take the stored content.
    """

    def __init__(
        self,
        client: DocumentSyncClient,
        serializer: SaveSerializer,
        name: str,
        *,
        default: Any = None,
        ledgers: LedgerUpdater | None = None,
    ):
        self._client = client
        self._serializer = serializer
        self._name = name
        self._default = default
        self._ledgers = ledgers

        self._content: Any = copy.deepcopy(default)
        self._state = SyncState.CLEAN
        self._conflict_content: Any = None
        self._last_failure: FailureKind | None = None
        self._last_error: str | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def content(self) -> Any:
        return self._content

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def version(self) -> int:
        return self._client.cache.get(self._name)

    @property
    def conflict_content(self) -> Any:
        return self._conflict_content

    @property
    def last_failure(self) -> FailureKind | None:
        return self._last_failure

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def load(self) -> Any:
        result = await self._client.read_result(self._name)
        if result.failure is not None and result.failure != FailureKind.NOT_CONFIGURED:
            logger.warning("SESSION LOAD: %s failed (%s)", self._name, result.failure)
        self._last_failure = result.failure
        self._last_error = None
        self._content = copy.deepcopy(self._default) if result.content is None else result.content
        if self._ledgers is not None:
            self._ledgers.track_entries(self._content)
        return self._content

    def edit(self, content: Any) -> asyncio.Task[SaveOutcome] | None:
        """
        Replace the local content and queue a save. Returns None while
        CONFLICTED: the edit is kept locally and goes out with overwrite().
        """
        self._content = content
        if self._state == SyncState.CONFLICTED:
            return None
        return self._serializer.submit(self._name, copy.deepcopy(content), self._save_job)

    async def save(self) -> SaveOutcome | None:
        task = self.edit(self._content)
        return await task if task is not None else None

    async def overwrite(self) -> SaveOutcome:
        if self._state != SyncState.CONFLICTED:
            raise RuntimeError(f"{self._name} has no conflict to resolve")
        logger.info("SESSION: overwriting %s with local content", self._name)
        job = functools.partial(self._save_job, overwrite=True)
        return await self._serializer.submit(self._name, copy.deepcopy(self._content), job)

    async def reload(self) -> Any:
        logger.info("SESSION: reloading %s, discarding local edits", self._name)
        self._serializer.supersede(self._name)
        await self._serializer.drain()
        self._client.invalidate(self._name)
        content = await self.load()
        self._state = SyncState.CLEAN
        self._conflict_content = None
        return content

    async def _save_job(
        self, snapshot: Any, still_current: StillCurrent, *, overwrite: bool = False
    ) -> BatchCommitResult | None:
        """
        Commit snapshot together with the ledgers it changes. Every ledger is
        checked against the version it was just read at; overwrite only drops
        the check on the primary document.
        """
        for attempt in range(1, LEDGER_ATTEMPTS + 1):
            derived: list[BatchEntry] = []
            if self._ledgers is not None:
                derived = await self._ledgers.changed_entries(self._client, snapshot)
            if not still_current():
                return None

            checked = [e.name for e in derived]
            if not overwrite:
                checked.insert(0, self._name)
            entries = [BatchEntry(name=self._name, content=snapshot), *derived]
            result = await self._client.commit(entries, preconditions=checked)

            if result.conflict and self._name not in result.conflicts and attempt < LEDGER_ATTEMPTS:
                logger.info("SESSION: ledgers %s changed while saving %s; recomputing", result.conflicts, self._name)
                continue
            break

        self._apply(result)
        return result

    def _apply(self, result: BatchCommitResult) -> None:
        if result.success:
            self._state = SyncState.CLEAN
            self._conflict_content = None
            self._last_failure = None
            self._last_error = None
            return

        self._last_failure = result.failure
        self._last_error = result.error
        if result.conflict and self._name in result.conflicts:
            logger.warning("SESSION: %s was modified by another user", self._name)
            self._state = SyncState.CONFLICTED
            self._conflict_content = result.current_content
        else:
            logger.warning("SESSION: saving %s failed (%s): %s", self._name, result.failure, result.error)
