"""Failure taxonomy for the shared-folder store."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    IO_FAILURE = "io_failure"
    VERSION_CONFLICT = "version_conflict"
    STAGING_FAILURE = "staging_failure"
    PARTIAL_BATCH_FAILURE = "partial_batch_failure"


class StoreError(Exception):
    """Base class for store-side failures that get translated into results."""

    kind = FailureKind.IO_FAILURE


class InvalidDocumentNameError(ValueError):
    """Raised when a document name would resolve outside the shared folder."""


class StagingError(StoreError):
    """Phase 1 of a batch failed; every temp file has already been removed."""

    kind = FailureKind.STAGING_FAILURE

    def __init__(self, name: str, cause: BaseException):
        super().__init__(f"Failed to write temp file for {name}: {cause}")
        self.name = name
        self.cause = cause


class PartialCommitError(StoreError):
    """Phase 2 of a batch failed after some documents were already renamed into place."""

    kind = FailureKind.PARTIAL_BATCH_FAILURE

    def __init__(self, name: str, committed: list[str], cause: BaseException):
        super().__init__(f"Partial rename failure at {name} ({len(committed)} already committed): {cause}")
        self.name = name
        self.committed = list(committed)
        self.cause = cause
