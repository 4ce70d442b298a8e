from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from json_store import TMP_SUFFIX

from .errors import InvalidDocumentNameError

Semester = Literal["Fall", "Winter", "Summer"]
SEMESTERS: tuple[str, ...] = ("Fall", "Winter", "Summer")

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def term_key(year: int, semester: Semester) -> str:
    if semester not in SEMESTERS:
        raise ValueError(f"Unknown semester {semester!r}; expected one of {SEMESTERS}")
    return f"{int(year)}-{semester}"


def term_document_name(entity: str, year: int, semester: Semester) -> str:
    # sections-2026-Fall.json
    return validate_document_name(f"{entity}-{term_key(year, semester)}.json")


def global_document_name(entity: str) -> str:
    # instructors.json, settings.json, years.json, ...
    return validate_document_name(f"{entity}.json")


def slugify(value: str) -> str:
    slug = _SLUG_RE.sub("-", value.strip().lower()).strip("-")
    return slug or "unnamed"


def validate_document_name(name: str) -> str:
    """
    Document names are single path components inside the shared folder.
    Temp-file names are reserved for batch staging.
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidDocumentNameError("Document name must be a non-empty string")
    if name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidDocumentNameError(f"Invalid document name: {name!r}")
    if name.endswith(TMP_SUFFIX):
        raise InvalidDocumentNameError(f"Document name may not end with {TMP_SUFFIX}: {name!r}")
    return name


def resolve_document_path(root: Path, name: str) -> Path:
    return root / validate_document_name(name)
