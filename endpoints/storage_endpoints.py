from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from error_log import ErrorLog
from persistence.documents import BatchCommitRequest, WriteRequest
from persistence.errors import InvalidDocumentNameError
from persistence.folder_config import FolderConfigRecord, FolderConfigRepository
from persistence.disk_store import SharedFolderDocumentStore
from persistence.paths import validate_document_name
from persistence.repositories import AsyncSharedFolderStore
from settings import get_settings

router = APIRouter(tags=["storage"])
logger = logging.getLogger(__name__)

# Centralized settings
SETTINGS = get_settings()
DEBUG_LOG_REQUESTS = SETTINGS.debug_log_requests

FOLDER_CONFIG = FolderConfigRepository(SETTINGS.config_path)
STORE = AsyncSharedFolderStore(
    SharedFolderDocumentStore(FOLDER_CONFIG, conflict_tolerance_ms=SETTINGS.conflict_tolerance_ms)
)
ERROR_LOG = ErrorLog.from_settings(SETTINGS)


class ErrorReport(BaseModel):
    message: str
    context: str | None = None
    stack: str | None = None


def _checked_name(name: str) -> str:
    try:
        return validate_document_name(name)
    except InvalidDocumentNameError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


# -------------------------------------------------------------------
# Shared folder record
# -------------------------------------------------------------------


@router.get("/storage/config")
async def get_config() -> dict[str, Any] | None:
    record = await asyncio.to_thread(FOLDER_CONFIG.get)
    return record.to_disk_doc() if record is not None else None


@router.post("/storage/config/select")
async def select_folder(record: FolderConfigRecord) -> dict[str, Any]:
    selected = await asyncio.to_thread(FOLDER_CONFIG.select, record.storage_path)
    return selected.to_disk_doc()


@router.post("/storage/config/change")
async def change_folder(record: FolderConfigRecord) -> dict[str, Any]:
    changed = await asyncio.to_thread(FOLDER_CONFIG.change, record.storage_path)
    return changed.to_disk_doc()


# -------------------------------------------------------------------
# Documents
# -------------------------------------------------------------------


@router.get("/storage/documents/{name}")
async def read_document(name: str) -> dict[str, Any]:
    result = await STORE.read(_checked_name(name))
    if DEBUG_LOG_REQUESTS:
        logger.info("READ %s: version=%s failure=%s", name, result.version, result.failure)
    return result.to_wire()


@router.put("/storage/documents/{name}")
async def write_document(name: str, req: WriteRequest) -> dict[str, Any]:
    result = await STORE.write(_checked_name(name), req.content, req.expected_version)
    if DEBUG_LOG_REQUESTS:
        logger.info(
            "WRITE %s: expected=%s success=%s conflict=%s new=%s",
            name,
            req.expected_version,
            result.success,
            result.conflict,
            result.new_version,
        )
    return result.to_wire()


@router.post("/storage/batch")
async def batch_write(req: BatchCommitRequest) -> dict[str, Any]:
    for entry in req.entries:
        _checked_name(entry.name)
    result = await STORE.batch_commit(req.entries, req.expected_versions)
    if DEBUG_LOG_REQUESTS:
        logger.info(
            "BATCH %s: success=%s failure=%s", [e.name for e in req.entries], result.success, result.failure
        )
    return result.to_wire()


# -------------------------------------------------------------------
# Error log
# -------------------------------------------------------------------


@router.post("/errors")
async def log_error(report: ErrorReport) -> dict[str, bool]:
    await asyncio.to_thread(ERROR_LOG.record, report.message, context=report.context, stack=report.stack)
    return {"ok": True}


@router.get("/errors")
async def get_error_log() -> PlainTextResponse:
    return PlainTextResponse(await asyncio.to_thread(ERROR_LOG.read))


@router.get("/errors/path")
async def get_error_log_path() -> dict[str, str]:
    return {"path": str(ERROR_LOG.path)}
