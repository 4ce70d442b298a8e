from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


def read_json(path: Path) -> Any | None:
    """
    Read JSON from disk.

    Returns None for missing files, empty files, or invalid JSON.
    """
    try:
        if not path.exists():
            return None
        raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            return None
        return json.loads(raw)
    except (OSError, ValueError):
        return None


def load_json(path: Path) -> Any:
    """
    Strict counterpart of read_json: raises OSError when the file can't be read
    and ValueError when it isn't valid JSON.
    """
    raw = path.read_text(encoding="utf-8")
    return json.loads(raw)


def dump_json(payload: Any, *, indent: int = 2, sort_keys: bool = False) -> str:
    return json.dumps(payload, indent=indent, sort_keys=sort_keys, ensure_ascii=False) + "\n"


def tmp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TMP_SUFFIX)


def atomic_write_json(path: Path, payload: Any, *, indent: int = 2, sort_keys: bool = True) -> None:
    """
    Atomically write JSON to disk by writing to a temp file then replacing.
    """
    text = dump_json(payload, indent=indent, sort_keys=sort_keys)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = tmp_path_for(path)
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            f.write(text)
        tmp_path.replace(path)
    except OSError:
        remove_quietly(tmp_path)
        raise


def stage_json(path: Path, payload: Any) -> Path:
    """
    Write payload next to path as `<name>.tmp` and return the temp path.
    The final file is left untouched.
    """
    text = dump_json(payload)
    tmp_path = tmp_path_for(path)
    with tmp_path.open("w", encoding="utf-8") as f:
        f.write(text)
    return tmp_path


def remove_quietly(path: Path) -> bool:
    try:
        path.unlink()
    except OSError:
        return False
    return True


def mtime_ms(path: Path) -> int:
    """Modification time of path in integer milliseconds."""
    return path.stat().st_mtime_ns // 1_000_000


def advance_mtime(path: Path, floor_ms: int) -> int:
    """
    Make sure path's mtime is strictly greater than floor_ms.

    Coarse filesystem clocks can hand two back-to-back writes the same
    millisecond; the version of a document must still move forward.
    """
    current = mtime_ms(path)
    if current > floor_ms:
        return current
    bumped = floor_ms + 1
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, bumped * 1_000_000))
    after = mtime_ms(path)
    if after <= floor_ms:
        # the filesystem rounds mtimes coarser than 1 ms (FAT, some SMB shares)
        logger.warning("MTIME: %s stayed at %s after bumping past %s; versions may repeat", path, after, floor_ms)
    return after
