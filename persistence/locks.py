from __future__ import annotations

import contextlib
import threading
from pathlib import Path
from typing import Iterable, Iterator


class PathLockRegistry:
    """
    Provides a stable lock per normalized file path to avoid global contention.

    These locks only order threads inside this process; other processes sharing
    the folder are handled by the version check, not by locking.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, path: Path) -> threading.Lock:
        key = str(path.resolve())
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextlib.contextmanager
    def hold_all(self, paths: Iterable[Path]) -> Iterator[None]:
        # Always acquired in sorted key order.
        keyed = {str(p.resolve()): p for p in paths}
        with contextlib.ExitStack() as stack:
            for key in sorted(keyed):
                stack.enter_context(self.lock_for(keyed[key]))
            yield


GLOBAL_PATH_LOCKS = PathLockRegistry()
