from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from .documents import BatchCommitResult, BatchEntry, ReadResult, WriteResult


class DocumentStore(Protocol):
    """
    Named JSON documents in a shared folder, versioned by modification time.
    """

    def read(self, name: str) -> ReadResult:
        """Return the stored content and version (content None / version 0 when absent)."""
        ...

    def write(self, name: str, content: Any, expected_version: int = 0) -> WriteResult:
        """Persist content unless the stored version moved away from expected_version."""
        ...

    def batch_commit(
        self,
        entries: Iterable[BatchEntry],
        expected_versions: Mapping[str, int] | None = None,
    ) -> BatchCommitResult:
        """Stage every entry, then rename them all into place."""
        ...
