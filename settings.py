from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {value}")
    return value


@dataclass(frozen=True)
class Settings:
    # Where the folder record (config.json) and error.log live
    config_dir: Path

    # Optimistic concurrency
    conflict_tolerance_ms: int

    # Error log
    error_log_max_bytes: int

    # Debug
    debug_log_requests: bool

    @property
    def config_path(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def error_log_path(self) -> Path:
        return self.config_dir / "error.log"


def get_settings() -> Settings:
    raw_dir = os.getenv("SCHEDULE_SYNC_CONFIG_DIR", "").strip()
    config_dir = Path(raw_dir).expanduser() if raw_dir else Path.home() / ".course-schedule-sync"

    # 50ms absorbs mtime rounding on SMB/NFS mounts; tune per filesystem.
    conflict_tolerance_ms = _env_int("SCHEDULE_SYNC_CONFLICT_TOLERANCE_MS", 50)

    error_log_max_bytes = _env_int("SCHEDULE_SYNC_ERROR_LOG_MAX_BYTES", 512 * 1024, minimum=1024)

    debug_log_requests = _env_bool("SCHEDULE_SYNC_DEBUG_LOG_REQUESTS", False)

    return Settings(
        config_dir=config_dir,
        conflict_tolerance_ms=conflict_tolerance_ms,
        error_log_max_bytes=error_log_max_bytes,
        debug_log_requests=debug_log_requests,
    )
