from __future__ import annotations

import importlib
import os
from pathlib import Path
import sys
from typing import Any


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for imports like `import persistence...` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from json_store import dump_json, mtime_ms  # noqa: E402
from persistence.disk_store import SharedFolderDocumentStore  # noqa: E402
from persistence.folder_config import FolderConfigRepository  # noqa: E402


def external_edit(path: Path, content: Any, *, later_by_ms: int = 10_000) -> int:
    """
    Simulate another user's write: new content and an mtime clearly past the
    tolerance window. Returns the new version.
    """
    before = mtime_ms(path) if path.exists() else 0
    path.write_text(dump_json(content), encoding="utf-8")
    target_ms = max(before, mtime_ms(path)) + later_by_ms
    os.utime(path, ns=(target_ms * 1_000_000, target_ms * 1_000_000))
    return mtime_ms(path)


@pytest.fixture
def shared_root(tmp_path: Path) -> Path:
    return tmp_path / "shared"


@pytest.fixture
def folder_config(tmp_path: Path, shared_root: Path) -> FolderConfigRepository:
    repo = FolderConfigRepository(tmp_path / "config" / "config.json")
    repo.select(shared_root)
    return repo


@pytest.fixture
def store(folder_config: FolderConfigRepository) -> SharedFolderDocumentStore:
    return SharedFolderDocumentStore(folder_config)


@pytest.fixture
def sandbox_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """
    Point settings at a temp config dir so tests never touch the real ~/.course-schedule-sync.
    """
    config_dir = tmp_path / "config"
    monkeypatch.setenv("SCHEDULE_SYNC_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("SCHEDULE_SYNC_CONFLICT_TOLERANCE_MS", raising=False)
    return config_dir


@pytest.fixture
def reload_endpoints(sandbox_config: Path) -> None:
    """
    Endpoints create the store singletons at import time; reload after sandboxing paths.
    """
    import endpoints.storage_endpoints as storage_endpoints

    importlib.reload(storage_endpoints)
    yield
    storage_endpoints.ERROR_LOG.close()
