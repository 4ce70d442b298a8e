from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import external_edit
from json_store import mtime_ms, read_json
from persistence.derived import INSTRUCTOR_LEDGER, LedgerUpdater
from persistence.disk_store import SharedFolderDocumentStore
from persistence.errors import FailureKind
from persistence.paths import term_document_name, term_key
from persistence.repositories import DocumentSyncClient
from persistence.serializer import SaveSerializer, SaveStatus
from persistence.sync_session import DocumentSyncSession, SyncState

NAME = term_document_name("sections", 2026, "Fall")


def _session(store: SharedFolderDocumentStore, **kwargs) -> DocumentSyncSession:
    return DocumentSyncSession(DocumentSyncClient(store), SaveSerializer(), NAME, default=[], **kwargs)


def test_edits_are_saved_and_coalesced(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        session = _session(store)
        await session.load()
        assert session.content == []

        tasks = [session.edit([{"id": f"E{i}"}]) for i in (1, 2, 3)]
        outcomes = await asyncio.gather(*tasks)

        assert [o.status for o in outcomes] == [SaveStatus.SUPERSEDED, SaveStatus.SUPERSEDED, SaveStatus.SAVED]
        assert read_json(shared_root / NAME) == [{"id": "E3"}]
        assert session.version == mtime_ms(shared_root / NAME)
        assert session.state == SyncState.CLEAN

    asyncio.run(_run())


def test_external_edit_puts_session_in_conflict(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        session = _session(store)
        await session.load()
        assert (await session.edit([{"id": "mine"}])).status == SaveStatus.SAVED

        theirs = [{"id": "theirs"}]
        external_edit(shared_root / NAME, theirs)

        outcome = await session.edit([{"id": "mine-2"}])
        assert outcome.status == SaveStatus.CONFLICT
        assert session.state == SyncState.CONFLICTED
        assert session.conflict_content == theirs
        assert session.last_failure == FailureKind.VERSION_CONFLICT
        assert read_json(shared_root / NAME) == theirs

        # further edits are held locally until the conflict is resolved
        assert session.edit([{"id": "mine-3"}]) is None
        assert session.content == [{"id": "mine-3"}]
        assert read_json(shared_root / NAME) == theirs

    asyncio.run(_run())


def test_overwrite_keeps_local_content(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        session = _session(store)
        await session.load()
        await session.edit([{"id": "mine"}])
        external_edit(shared_root / NAME, [{"id": "theirs"}])
        await session.edit([{"id": "mine-2"}])
        assert session.state == SyncState.CONFLICTED

        outcome = await session.overwrite()

        assert outcome.status == SaveStatus.SAVED
        assert session.state == SyncState.CLEAN
        assert session.conflict_content is None
        assert read_json(shared_root / NAME) == [{"id": "mine-2"}]
        assert session.version == mtime_ms(shared_root / NAME)

        # the next ordinary save works from the new baseline
        assert (await session.edit([{"id": "mine-3"}])).status == SaveStatus.SAVED

    asyncio.run(_run())


def test_reload_discards_local_edits_and_resets_baseline(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        session = _session(store)
        await session.load()
        await session.edit([{"id": "mine"}])
        theirs = [{"id": "theirs"}]
        their_version = external_edit(shared_root / NAME, theirs)
        await session.edit([{"id": "mine-2"}])
        assert session.state == SyncState.CONFLICTED

        content = await session.reload()

        assert content == theirs
        assert session.content == theirs
        assert session.state == SyncState.CLEAN
        assert session.version == their_version

        outcome = await session.edit(theirs + [{"id": "after-reload"}])
        assert outcome.status == SaveStatus.SAVED
        assert read_json(shared_root / NAME) == theirs + [{"id": "after-reload"}]

    asyncio.run(_run())


def test_reload_drops_queued_saves(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        session = _session(store)
        await session.load()
        pending = session.edit([{"id": "never-saved"}])
        await session.reload()
        assert (await pending).status == SaveStatus.SUPERSEDED
        assert not (shared_root / NAME).exists()
        assert session.content == []

    asyncio.run(_run())


def test_overwrite_requires_a_conflict(store: SharedFolderDocumentStore):
    async def _run():
        session = _session(store)
        with pytest.raises(RuntimeError):
            await session.overwrite()

    asyncio.run(_run())


def test_save_commits_changed_ledgers_with_primary(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        ledgers = LedgerUpdater([INSTRUCTOR_LEDGER], term_key(2026, "Fall"))
        session = _session(store, ledgers=ledgers)
        await session.load()

        sections = [{"id": "s1", "courseName": "CS101", "sectionNumber": "1", "instructor": "Ada", "location": "B1"}]
        outcome = await session.edit(sections)
        assert outcome.status == SaveStatus.SAVED
        assert outcome.result is not None
        assert set(outcome.result.timestamps) == {NAME, "instructor-ledger-ada.json"}
        ledger_version = mtime_ms(shared_root / "instructor-ledger-ada.json")

        # a change that doesn't affect the ledger leaves it out of the batch
        outcome = await session.edit([dict(sections[0], color="#abc")])
        assert outcome.status == SaveStatus.SAVED
        assert set(outcome.result.timestamps) == {NAME}
        assert mtime_ms(shared_root / "instructor-ledger-ada.json") == ledger_version

    asyncio.run(_run())


def test_failed_save_keeps_session_clean(tmp_path: Path):
    async def _run():
        from persistence.folder_config import FolderConfigRepository

        unconfigured = SharedFolderDocumentStore(FolderConfigRepository(tmp_path / "config.json"))
        session = _session(unconfigured)
        assert await session.load() == []
        assert session.last_failure == FailureKind.NOT_CONFIGURED

        outcome = await session.edit([{"id": "x"}])
        assert outcome.status == SaveStatus.FAILED
        assert session.state == SyncState.CLEAN
        assert session.last_error == "No shared folder configured"

    asyncio.run(_run())


ADA_SECTION = {"id": "s1", "courseName": "CS101", "sectionNumber": "1", "instructor": "Ada", "location": "B1"}
ADA_LEDGER = "instructor-ledger-ada.json"


def _ledger_session(store: SharedFolderDocumentStore, client: DocumentSyncClient | None = None) -> DocumentSyncSession:
    ledgers = LedgerUpdater([INSTRUCTOR_LEDGER], term_key(2026, "Fall"))
    return DocumentSyncSession(client or DocumentSyncClient(store), SaveSerializer(), NAME, default=[], ledgers=ledgers)


def test_fresh_session_clears_ledger_of_owner_removed_after_load(store: SharedFolderDocumentStore, shared_root: Path):
    async def _run():
        first = _ledger_session(store)
        await first.load()
        await first.edit([ADA_SECTION])
        assert read_json(shared_root / ADA_LEDGER) == {
            "2026-Fall": [{"courseName": "CS101", "sectionNumber": "1", "location": "B1"}]
        }

        # another process (or a restart) starts with nothing tracked in memory
        second = _ledger_session(store)
        await second.load()
        outcome = await second.edit([])

        assert outcome.status == SaveStatus.SAVED
        assert set(outcome.result.timestamps) == {NAME, ADA_LEDGER}
        assert read_json(shared_root / ADA_LEDGER) == {"2026-Fall": []}

        # already empty: the next save leaves the ledger alone
        outcome = await second.edit([])
        assert set(outcome.result.timestamps) == {NAME}

    asyncio.run(_run())


def test_ledger_edited_by_another_user_is_recomputed_before_commit(
    store: SharedFolderDocumentStore, shared_root: Path, monkeypatch: pytest.MonkeyPatch
):
    async def _run():
        client = DocumentSyncClient(store)
        session = _ledger_session(store, client)
        await session.load()
        await session.edit([ADA_SECTION])

        ledger_path = shared_root / ADA_LEDGER
        theirs = [{"courseName": "MATH1", "sectionNumber": "1", "location": "A1"}]
        real_commit = client.commit
        calls = 0

        async def commit_after_their_edit(entries, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                external_edit(ledger_path, dict(read_json(ledger_path), **{"2026-Winter": theirs}))
            return await real_commit(entries, **kwargs)

        monkeypatch.setattr(client, "commit", commit_after_their_edit)

        moved = [dict(ADA_SECTION, location="B2")]
        outcome = await session.edit(moved)

        assert outcome.status == SaveStatus.SAVED
        assert calls == 2
        assert read_json(shared_root / NAME) == moved
        assert read_json(ledger_path) == {
            "2026-Fall": [{"courseName": "CS101", "sectionNumber": "1", "location": "B2"}],
            "2026-Winter": theirs,
        }
        assert session.state == SyncState.CLEAN

    asyncio.run(_run())


def test_ledger_that_keeps_changing_fails_the_save_without_conflict_state(
    store: SharedFolderDocumentStore, shared_root: Path, monkeypatch: pytest.MonkeyPatch
):
    async def _run():
        client = DocumentSyncClient(store)
        session = _ledger_session(store, client)
        await session.load()
        await session.edit([ADA_SECTION])

        ledger_path = shared_root / ADA_LEDGER
        theirs = {"2026-Winter": [{"courseName": "MATH1"}]}
        real_commit = client.commit
        calls = 0

        async def commit_after_their_edit(entries, **kwargs):
            nonlocal calls
            calls += 1
            external_edit(ledger_path, theirs)
            return await real_commit(entries, **kwargs)

        monkeypatch.setattr(client, "commit", commit_after_their_edit)

        outcome = await session.edit([dict(ADA_SECTION, location="B2")])

        assert calls == 2
        assert outcome.status == SaveStatus.FAILED
        assert outcome.result.conflicts == [ADA_LEDGER]
        assert session.state == SyncState.CLEAN
        assert session.last_failure == FailureKind.VERSION_CONFLICT
        assert read_json(ledger_path) == theirs
        assert read_json(shared_root / NAME) == [ADA_SECTION]

    asyncio.run(_run())


def test_overwrite_still_checks_ledgers(store: SharedFolderDocumentStore, shared_root: Path, monkeypatch: pytest.MonkeyPatch):
    async def _run():
        client = DocumentSyncClient(store)
        session = _ledger_session(store, client)
        await session.load()
        await session.edit([ADA_SECTION])
        external_edit(shared_root / NAME, [])
        await session.edit([dict(ADA_SECTION, location="B2")])
        assert session.state == SyncState.CONFLICTED

        ledger_path = shared_root / ADA_LEDGER
        real_commit = client.commit
        seen: list[list[str]] = []

        async def recording_commit(entries, **kwargs):
            seen.append(list(kwargs["preconditions"]))
            return await real_commit(entries, **kwargs)

        monkeypatch.setattr(client, "commit", recording_commit)
        outcome = await session.overwrite()

        assert outcome.status == SaveStatus.SAVED
        assert seen == [[ADA_LEDGER]]
        assert read_json(ledger_path)["2026-Fall"][0]["location"] == "B2"

    asyncio.run(_run())
