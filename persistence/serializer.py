from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from .documents import BatchCommitResult

logger = logging.getLogger(__name__)

StillCurrent = Callable[[], bool]
# job(snapshot, still_current) -> result, or None when it noticed it was superseded
SaveJob = Callable[[Any, StillCurrent], Awaitable[BatchCommitResult | None]]


class SaveStatus(str, Enum):
    SAVED = "saved"
    SUPERSEDED = "superseded"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class SaveOutcome:
    status: SaveStatus
    channel: str
    generation: int
    result: BatchCommitResult | None = None


@dataclass(frozen=True)
class SaveTask:
    channel: str
    generation: int
    snapshot: Any
    job: SaveJob


class SaveSerializer:
    """
    Runs at most one save at a time, in submission order.

    Every submit draws a fresh generation and marks it as the newest for its
    channel (usually the primary document name). A queued task whose
    generation has been overtaken by then is dropped without doing any work;
    a running job gets `still_current` to re-check right before it commits.
    A version conflict is reported as CONFLICT only when the channel's own
    document is among the conflicting names; anything else is FAILED.
    """

    def __init__(self) -> None:
        self._generations = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._tail: asyncio.Task[SaveOutcome] | None = None

    def current_generation(self, channel: str) -> int:
        return self._latest.get(channel, 0)

    def is_current(self, task: SaveTask) -> bool:
        return self._latest.get(task.channel) == task.generation

    def submit(self, channel: str, snapshot: Any, job: SaveJob) -> asyncio.Task[SaveOutcome]:
        task = SaveTask(channel=channel, generation=self.supersede(channel), snapshot=snapshot, job=job)
        previous = self._tail
        runner = asyncio.get_running_loop().create_task(
            self._run(previous, task), name=f"save:{channel}:{task.generation}"
        )
        runner.add_done_callback(_log_failure)
        self._tail = runner
        return runner

    def supersede(self, channel: str) -> int:
        """Advance the channel's generation so every queued save for it is dropped."""
        generation = next(self._generations)
        self._latest[channel] = generation
        return generation

    async def drain(self) -> None:
        """Wait until every save submitted so far (and any submitted meanwhile) has finished."""
        while self._tail is not None and not self._tail.done():
            await asyncio.wait([self._tail])

    async def _run(self, previous: asyncio.Task[SaveOutcome] | None, task: SaveTask) -> SaveOutcome:
        if previous is not None:
            # The predecessor's failure is reported to its own awaiter, not here.
            await asyncio.wait([previous])

        if not self.is_current(task):
            logger.debug("SAVE: dropping %s generation %s (superseded)", task.channel, task.generation)
            return SaveOutcome(SaveStatus.SUPERSEDED, task.channel, task.generation)

        result = await task.job(task.snapshot, lambda: self.is_current(task))
        if result is None:
            logger.debug("SAVE: %s generation %s superseded before commit", task.channel, task.generation)
            return SaveOutcome(SaveStatus.SUPERSEDED, task.channel, task.generation)
        if result.success:
            status = SaveStatus.SAVED
        elif result.conflict and task.channel in result.conflicts:
            status = SaveStatus.CONFLICT
        else:
            status = SaveStatus.FAILED
        return SaveOutcome(status, task.channel, task.generation, result)


def _log_failure(runner: asyncio.Task[SaveOutcome]) -> None:
    if runner.cancelled():
        return
    exc = runner.exception()
    if exc is not None:
        logger.error("SAVE: %s raised %r", runner.get_name(), exc, exc_info=exc)
