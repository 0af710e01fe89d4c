"""Tests for additive, idempotent restore."""

import pytest

from memeos_backup.backup.exceptions import CorruptBackupError
from memeos_backup.backup.hasher import ContentHasher
from memeos_backup.backup.models import Backup, MediaFile
from memeos_backup.backup.restore import RestoreEngine
from tests.utils import InMemoryMediaStore, InMemoryNoteStore, make_note


def _backup(notes, media=(), backup_id="backup_1"):
    hasher = ContentHasher()
    snapshots = hasher.snapshot_all(notes)
    return Backup(
        id=backup_id,
        created_at="2024-03-01T09:00:00Z",
        notes=snapshots,
        media=list(media),
        integrity_digest=hasher.integrity_digest(snapshots),
    )


@pytest.mark.asyncio
async def test_restore_recreates_deleted_note():
    backup = _backup([make_note("1", "hello", title="Greeting")])
    note_store = InMemoryNoteStore()

    report = await RestoreEngine(note_store).restore(backup)

    assert report.success
    assert (report.total_notes, report.success_count, report.skipped_duplicate_count) == (1, 1, 0)
    created = note_store.created[0]
    assert created.content == "hello"
    assert created.title == "Greeting"
    assert created.created_at == "2024-03-01T09:00:00.000Z"
    assert report.per_note_results[0].new_note_id == created.id


@pytest.mark.asyncio
async def test_restore_twice_creates_nothing_the_second_time():
    backup = _backup([make_note("1", "hello"), make_note("2", "world")])
    note_store = InMemoryNoteStore()
    engine = RestoreEngine(note_store)

    first = await engine.restore(backup)
    second = await engine.restore(backup)

    assert first.success_count == 2
    assert second.success_count == 0
    assert second.skipped_duplicate_count == 2
    assert len(note_store.notes) == 2


@pytest.mark.asyncio
async def test_restore_never_overwrites_edited_note():
    backup = _backup([make_note("1", "hello")])
    note_store = InMemoryNoteStore([make_note("1", "hello world")])

    report = await RestoreEngine(note_store).restore(backup)

    assert report.success_count == 1
    contents = sorted(n.content for n in note_store.notes.values())
    assert contents == ["hello", "hello world"]
    assert note_store.notes["1"].content == "hello world"


@pytest.mark.asyncio
async def test_duplicate_snapshots_in_one_backup_restore_once():
    backup = _backup([make_note("1", "same"), make_note("2", "same")])
    note_store = InMemoryNoteStore()

    report = await RestoreEngine(note_store).restore(backup)

    assert (report.success_count, report.skipped_duplicate_count) == (1, 1)
    assert [r.action for r in report.per_note_results] == ["created", "skipped"]


@pytest.mark.asyncio
async def test_failed_note_does_not_stop_the_rest():
    backup = _backup([make_note("1", "ok one"), make_note("2", "poison"), make_note("3", "ok two")])
    note_store = InMemoryNoteStore()
    note_store.fail_on = ["poison"]

    report = await RestoreEngine(note_store).restore(backup)

    assert report.success
    assert (report.success_count, report.failure_count) == (2, 1)
    assert [r.action for r in report.per_note_results] == ["created", "failed", "created"]
    assert "rejected" in report.per_note_results[1].error


@pytest.mark.asyncio
async def test_corrupt_backup_changes_nothing():
    backup = _backup([make_note("1", "hello")])
    backup.notes[0].content = "tampered"
    note_store = InMemoryNoteStore()

    with pytest.raises(CorruptBackupError):
        await RestoreEngine(note_store).restore(backup)

    assert note_store.created == []


@pytest.mark.asyncio
async def test_media_reuploaded_and_references_rewritten():
    media = MediaFile(filename="cat.png", source_reference="https://old.example/cat.png", data=b"cat")
    backup = _backup([make_note("1", "look ![cat](https://old.example/cat.png)")], [media])
    note_store = InMemoryNoteStore()
    media_store = InMemoryMediaStore()

    report = await RestoreEngine(note_store, media_store).restore(backup)

    assert media_store.files == {"cat.png": b"cat"}
    assert report.media_results[0].new_url == "/uploads/cat.png"
    assert not report.media_results[0].skipped
    assert note_store.created[0].content == "look ![cat](/uploads/cat.png)"


@pytest.mark.asyncio
async def test_existing_media_is_not_uploaded_again():
    media = MediaFile(filename="cat.png", source_reference="/uploads/cat.png", data=b"cat")
    backup = _backup([make_note("1", "![cat](/uploads/cat.png)")], [media])
    media_store = InMemoryMediaStore({"cat.png": b"cat"})
    note_store = InMemoryNoteStore()

    report = await RestoreEngine(note_store, media_store).restore(backup)

    assert media_store.uploads == []
    assert report.media_results[0].skipped
    assert note_store.created[0].content == "![cat](/uploads/cat.png)"


@pytest.mark.asyncio
async def test_rewritten_note_already_live_is_skipped():
    media = MediaFile(filename="cat.png", source_reference="https://old.example/cat.png", data=b"cat")
    backup = _backup([make_note("1", "![cat](https://old.example/cat.png)")], [media])
    note_store = InMemoryNoteStore([make_note("9", "![cat](/uploads/cat.png)")])

    report = await RestoreEngine(note_store, InMemoryMediaStore()).restore(backup)

    assert report.skipped_duplicate_count == 1
    assert note_store.created == []


@pytest.mark.asyncio
async def test_media_without_store_is_reported():
    media = MediaFile(filename="cat.png", source_reference="/uploads/cat.png", data=b"cat")
    backup = _backup([make_note("1", "![cat](/uploads/cat.png)")], [media])

    report = await RestoreEngine(InMemoryNoteStore()).restore(backup)

    assert report.success
    assert not report.media_results[0].success


@pytest.mark.asyncio
async def test_server_restore_mirrored_for_server_backups(remote):
    await remote.create_backup({"type": "manual", "timestamp": "2024-03-01T09:00:00Z", "notes": []})
    engine = RestoreEngine(InMemoryNoteStore(), remote=remote)

    await engine.restore(_backup([make_note("1")], backup_id="backup_1"))
    await engine.restore(_backup([make_note("2")], backup_id="local_1700000000000_abcdef"))
    await engine.restore(_backup([make_note("3")], backup_id="backup_1"), mirror_remote=False)

    assert remote.restored == ["backup_1"]


@pytest.mark.asyncio
async def test_server_restore_failure_is_not_fatal(remote):
    remote.available = False
    engine = RestoreEngine(InMemoryNoteStore(), remote=remote)

    report = await engine.restore(_backup([make_note("1")], backup_id="backup_7"))

    assert report.success
    assert report.success_count == 1
