from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from json_store import atomic_write_json, read_json

from .locks import GLOBAL_PATH_LOCKS

logger = logging.getLogger(__name__)


class FolderConfigRecord(BaseModel):
    """
    Mirrors the on-disk config.json schema exactly:
      { "storagePath": "/mnt/shared/schedules" }
    """

    model_config = ConfigDict(populate_by_name=True)

    storage_path: str = Field(alias="storagePath", min_length=1)

    @property
    def root(self) -> Path:
        return Path(self.storage_path)

    def to_disk_doc(self) -> dict[str, str]:
        return self.model_dump(mode="json", by_alias=True)


class FolderConfigRepository:
    """
    Persists the single "which shared folder" record.

    The record is re-read on every lookup so a folder change made through one
    handle is seen by every store resolving paths through another.
    """

    def __init__(self, config_path: Path):
        self._path = config_path

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> FolderConfigRecord | None:
        lock = GLOBAL_PATH_LOCKS.lock_for(self._path)
        with lock:
            raw = read_json(self._path)
        if not isinstance(raw, dict):
            return None
        try:
            return FolderConfigRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning("FOLDER CONFIG: ignoring invalid record in %s: %r", self._path, e)
            return None

    def storage_root(self) -> Path | None:
        record = self.get()
        return record.root if record is not None else None

    def select(self, storage_path: str | Path) -> FolderConfigRecord:
        record = FolderConfigRecord(storage_path=str(storage_path))
        self._save(record)
        logger.info("FOLDER CONFIG: shared folder set to %s", record.storage_path)
        return record

    def change(self, storage_path: str | Path) -> FolderConfigRecord:
        previous = self.get()
        record = self.select(storage_path)
        if previous is not None and previous.storage_path != record.storage_path:
            logger.info("FOLDER CONFIG: moved from %s", previous.storage_path)
        return record

    def _save(self, record: FolderConfigRecord) -> None:
        lock = GLOBAL_PATH_LOCKS.lock_for(self._path)
        with lock:
            atomic_write_json(self._path, record.to_disk_doc())
