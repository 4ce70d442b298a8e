from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from settings import Settings

# Loggers whose warnings end up in error.log next to config.json.
ATTACHED_LOGGERS = ("persistence", "endpoints", "json_store")


def _bak_name(default_name: str) -> str:
    # error.log.1 -> error.log.bak
    return default_name[:-2] + ".bak" if default_name.endswith(".1") else default_name


class _ErrorLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        # UI-reported lines arrive preformatted with their own timestamp
        if record.name == "ui":
            return record.getMessage()
        return super().format(record)


class ErrorLog:
    """
    Size-capped error log users can attach to a bug report.

    Holds one backup: once error.log passes max_bytes it becomes error.log.bak.
    """

    def __init__(self, path: Path, *, max_bytes: int = 512 * 1024):
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=1, encoding="utf-8", delay=True)
        self._handler.namer = _bak_name
        self._handler.setLevel(logging.WARNING)
        self._handler.setFormatter(_ErrorLogFormatter("[%(asctime)s] %(name)s %(levelname)s: %(message)s"))

    @classmethod
    def from_settings(cls, settings: Settings) -> "ErrorLog":
        return cls(settings.error_log_path, max_bytes=settings.error_log_max_bytes)

    @property
    def path(self) -> Path:
        return self._path

    def attach(self, *logger_names: str) -> None:
        for name in logger_names or ATTACHED_LOGGERS:
            log = logging.getLogger(name)
            if self._handler not in log.handlers:
                log.addHandler(self._handler)

    def detach(self, *logger_names: str) -> None:
        for name in logger_names or ATTACHED_LOGGERS:
            logging.getLogger(name).removeHandler(self._handler)

    def record(self, message: str, *, context: str | None = None, stack: str | None = None) -> None:
        """Append an error reported by the UI, e.g. a failed save shown to the user."""
        timestamp = datetime.now(timezone.utc).isoformat()
        line = f"[{timestamp}] {message}"
        if context:
            line += f" | ctx: {context}"
        if stack:
            line += f"\n  {stack}"
        record = logging.makeLogRecord({"name": "ui", "levelno": logging.ERROR, "levelname": "ERROR", "msg": line})
        self._handler.handle(record)

    def read(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8") if self._path.exists() else ""
        except OSError:
            return ""

    def close(self) -> None:
        self.detach()
        self._handler.close()
