from __future__ import annotations

from .derived import COURSE_LEDGER, INSTRUCTOR_LEDGER, LedgerDefinition, LedgerUpdater
from .disk_store import SharedFolderDocumentStore
from .documents import BatchCommitResult, BatchEntry, ReadResult, WriteResult
from .errors import FailureKind
from .folder_config import FolderConfigRecord, FolderConfigRepository
from .repositories import AsyncSharedFolderStore, DocumentSyncClient
from .serializer import SaveOutcome, SaveSerializer, SaveStatus
from .sync_session import DocumentSyncSession, SyncState
from .version_cache import VersionCache

__all__ = [
    "SharedFolderDocumentStore",
    "AsyncSharedFolderStore",
    "DocumentSyncClient",
    "VersionCache",
    "FolderConfigRecord",
    "FolderConfigRepository",
    "ReadResult",
    "WriteResult",
    "BatchEntry",
    "BatchCommitResult",
    "FailureKind",
    "SaveSerializer",
    "SaveOutcome",
    "SaveStatus",
    "LedgerDefinition",
    "LedgerUpdater",
    "INSTRUCTOR_LEDGER",
    "COURSE_LEDGER",
    "DocumentSyncSession",
    "SyncState",
]
