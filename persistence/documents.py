from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import FailureKind


class WireModel(BaseModel):
    """
    Results travel to the UI as camelCase JSON:
      { "success": true, "conflict": false, "newVersion": 1767225600123 }
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReadResult(WireModel):
    content: Any = None
    version: int = 0
    failure: FailureKind | None = None

    @property
    def exists(self) -> bool:
        return self.version > 0


class WriteRequest(WireModel):
    content: Any = None
    expected_version: int = Field(default=0, ge=0)


class WriteResult(WireModel):
    success: bool
    conflict: bool = False
    new_version: int = 0
    current_content: Any = None
    failure: FailureKind | None = None
    error: str | None = None

    @classmethod
    def failed(cls, kind: FailureKind, error: str) -> "WriteResult":
        return cls(success=False, failure=kind, error=error)


class BatchEntry(WireModel):
    name: str
    content: Any = None


class BatchCommitRequest(WireModel):
    entries: list[BatchEntry] = Field(default_factory=list)
    expected_versions: dict[str, int] = Field(default_factory=dict)


class BatchCommitResult(WireModel):
    success: bool
    timestamps: dict[str, int] = Field(default_factory=dict)
    error: str | None = None
    failure: FailureKind | None = None
    # version_conflict: names whose precondition failed, plus the first one's stored content
    conflicts: list[str] = Field(default_factory=list)
    current_content: Any = None
    # partial_batch_failure: names already renamed into place
    committed: list[str] = Field(default_factory=list)

    @property
    def conflict(self) -> bool:
        return self.failure == FailureKind.VERSION_CONFLICT

    @classmethod
    def failed(cls, kind: FailureKind, error: str, **extra: Any) -> "BatchCommitResult":
        return cls(success=False, failure=kind, error=error, **extra)
