"""Per-owner ledgers derived from a term's schedule entries.

A ledger document maps term keys to the summary records of one owner, e.g.
``instructor-ledger-ada-lovelace.json``::

    {
      "2025-Fall": [{"courseName": "CS101", "sectionNumber": "1", "location": "B12", "workload": 3}],
      "2026-Fall": [...]
    }

Saving a term only ever replaces that term's key; an owner left with no
entries keeps the key with an empty list. A ledger whose recomputed
content equals what is stored is left out of the batch so its version (and
every other reader's cached copy of it) stays valid.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from pydantic import BaseModel, Field

from .documents import BatchEntry
from .paths import slugify, validate_document_name

if TYPE_CHECKING:
    from .repositories import DocumentSyncClient

logger = logging.getLogger(__name__)


class LedgerDefinition(BaseModel):
    kind: str = Field(min_length=1)
    key_field: str = Field(min_length=1)
    record_fields: tuple[str, ...] = ()

    def document_name(self, owner: str) -> str:
        return validate_document_name(f"{slugify(self.kind)}-ledger-{slugify(owner)}.json")

    def owners_in(self, entries: Iterable[Any]) -> set[str]:
        owners: set[str] = set()
        for e in entries:
            if not isinstance(e, Mapping):
                continue
            value = e.get(self.key_field)
            if isinstance(value, str) and value.strip():
                owners.add(value)
        return owners

    def summarize(self, entries: Iterable[Any], owner: str) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for e in entries:
            if not isinstance(e, Mapping) or e.get(self.key_field) != owner:
                continue
            records.append({f: copy.deepcopy(e[f]) for f in self.record_fields if f in e})
        return records


INSTRUCTOR_LEDGER = LedgerDefinition(
    kind="instructor",
    key_field="instructor",
    record_fields=("courseName", "sectionNumber", "location", "workload"),
)

COURSE_LEDGER = LedgerDefinition(
    kind="course",
    key_field="courseName",
    record_fields=("sectionNumber", "instructor", "location"),
)


def replace_term(old_content: Any, term_key: str, records: list[dict[str, Any]]) -> dict[str, Any]:
    """Copy of old_content with term_key set to records and every other term kept."""
    base = old_content if isinstance(old_content, Mapping) else {}
    updated = {k: copy.deepcopy(v) for k, v in base.items() if k != term_key}
    updated[term_key] = records
    return updated


def ledger_updates(
    definition: LedgerDefinition,
    entries: Sequence[Any],
    term_key: str,
    old_ledgers: Mapping[str, Any],
    owners: Iterable[str] = (),
) -> list[BatchEntry]:
    """
    Recompute the ledgers for every owner referenced by entries (plus the
    given owners) and return only those whose content changed.

    old_ledgers maps owner -> stored ledger content (missing means empty).
    """
    changed: list[BatchEntry] = []
    for owner in sorted(definition.owners_in(entries) | set(owners)):
        old = old_ledgers.get(owner)
        old_content = old if isinstance(old, Mapping) else {}
        records = definition.summarize(entries, owner)
        if not records and term_key not in old_content:
            # nothing stored for this term, nothing to clear
            continue
        new_content = replace_term(old_content, term_key, records)
        if new_content == old_content:
            continue
        changed.append(BatchEntry(name=definition.document_name(owner), content=new_content))
    return changed


class LedgerUpdater:
    """
    Folds changed ledgers into a primary document's save.

    Owners seen in the loaded document or in earlier saves stay tracked so
    that removing an owner's last section still clears their term.
    """

    def __init__(
        self,
        definitions: Sequence[LedgerDefinition],
        term_key: str,
        *,
        owners: Mapping[str, Iterable[str]] | None = None,
    ):
        self._definitions = list(definitions)
        self._term_key = term_key
        self._tracked: dict[str, set[str]] = {d.kind: set() for d in self._definitions}
        for kind, names in (owners or {}).items():
            self._tracked.setdefault(kind, set()).update(n for n in names if n)

    @property
    def term_key(self) -> str:
        return self._term_key

    def track(self, kind: str, owner: str) -> None:
        self._tracked.setdefault(kind, set()).add(owner)

    def tracked(self, kind: str) -> set[str]:
        return set(self._tracked.get(kind, set()))

    def track_entries(self, content: Any) -> None:
        """Track every owner referenced by a loaded primary document."""
        if not isinstance(content, list):
            return
        for definition in self._definitions:
            self._tracked.setdefault(definition.kind, set()).update(definition.owners_in(content))

    async def changed_entries(self, client: "DocumentSyncClient", content: Any) -> list[BatchEntry]:
        if not isinstance(content, list):
            logger.debug("LEDGERS: primary content is %s, not a list; nothing to derive", type(content).__name__)
            return []

        changed: list[BatchEntry] = []
        for definition in self._definitions:
            owners = definition.owners_in(content) | self._tracked.get(definition.kind, set())
            old_ledgers: dict[str, Any] = {}
            readable: set[str] = set()
            for owner in sorted(owners):
                result = await client.read_result(definition.document_name(owner))
                if result.failure is not None:
                    # Rewriting an unreadable ledger would drop its other terms.
                    logger.warning("LEDGERS: skipping %s ledger for %r (%s)", definition.kind, owner, result.failure)
                    continue
                old_ledgers[owner] = result.content
                readable.add(owner)
            entries = [e for e in content if not isinstance(e, Mapping) or e.get(definition.key_field) in readable]
            changed.extend(ledger_updates(definition, entries, self._term_key, old_ledgers, readable))
            self._tracked.setdefault(definition.kind, set()).update(owners)
        return changed
