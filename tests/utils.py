"""Test utilities for memeos-backup tests."""
import copy
from typing import Any, Dict, List, Optional

from memeos_backup.base import (
    BaseHistorySink,
    BaseMediaStore,
    BaseNoteStore,
    BaseRemoteBackupStore,
)
from memeos_backup.backup.exceptions import (
    BackupNotFoundError,
    MediaFetchError,
    RemoteUnavailableError,
)
from memeos_backup.backup.media import media_filename
from memeos_backup.backup.models import HistoryRecord, MediaFile, Note


class InMemoryNoteStore(BaseNoteStore):
    """Note store keeping notes in insertion order; ids are assigned on create."""

    def __init__(self, notes: Optional[List[Note]] = None):
        self.notes: Dict[str, Note] = {}
        self.created: List[Note] = []
        self.fail_on: List[str] = []
        self._next_id = 1
        for note in notes or []:
            self.add(note)

    def add(self, note: Note) -> Note:
        if note.id is None:
            note = note.model_copy(update={"id": str(self._next_id)})
        self._next_id = max(self._next_id, int(note.id) + 1) if note.id.isdigit() else self._next_id
        self.notes[note.id] = note
        return note

    def edit(self, note_id: str, **changes: Any) -> Note:
        note = self.notes[note_id].model_copy(update=changes)
        self.notes[note_id] = note
        return note

    async def list_notes(self) -> List[Note]:
        return list(self.notes.values())

    async def get_note(self, note_id: str) -> Optional[Note]:
        return self.notes.get(note_id)

    async def create_note(self, note: Note) -> Note:
        if any(marker in note.content for marker in self.fail_on):
            raise RuntimeError(f"note store rejected {note.title!r}")
        created = self.add(note.model_copy(update={"id": None}))
        self.created.append(created)
        return created


class FakeRemote(BaseRemoteBackupStore):
    """Server-shaped remote: rows keep bookkeeping at top level and the document under ``data``."""

    def __init__(self):
        self.available = True
        self.rows: List[Dict[str, Any]] = []
        self.settings: Optional[Dict[str, Any]] = None
        self.restored: List[str] = []
        self.create_calls = 0
        self._next_id = 1

    def _check(self) -> None:
        if not self.available:
            raise RemoteUnavailableError("remote down")

    async def create_backup(self, payload: Dict[str, Any]) -> str:
        self._check()
        self.create_calls += 1
        backup_id = f"backup_{self._next_id}"
        self._next_id += 1
        document = {k: v for k, v in copy.deepcopy(payload).items() if k != "id"}
        self.rows.append({
            "id": backup_id,
            "backup_type": payload.get("type"),
            "created_at": payload.get("timestamp"),
            "data": document,
        })
        return backup_id

    async def list_backups(self) -> List[Dict[str, Any]]:
        self._check()
        return copy.deepcopy(self.rows)

    async def delete_backup(self, backup_id: str) -> None:
        self._check()
        before = len(self.rows)
        self.rows = [r for r in self.rows if r["id"] != backup_id]
        if len(self.rows) == before:
            raise BackupNotFoundError(backup_id)

    async def restore_backup(self, backup_id: str) -> None:
        self._check()
        if not any(r["id"] == backup_id for r in self.rows):
            raise BackupNotFoundError(backup_id)
        self.restored.append(backup_id)

    async def get_settings(self) -> Optional[Dict[str, Any]]:
        self._check()
        return copy.deepcopy(self.settings)

    async def save_settings(self, settings: Dict[str, Any]) -> None:
        self._check()
        self.settings = dict(settings)


class InMemoryMediaStore(BaseMediaStore):
    """Uploads directory held in a dict of filename to bytes."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None, url_prefix: str = "/uploads/"):
        self.files: Dict[str, bytes] = dict(files or {})
        self.url_prefix = url_prefix
        self.uploads: List[str] = []

    async def read(self, reference: str) -> bytes:
        name = media_filename(reference)
        if name not in self.files:
            raise MediaFetchError(reference, "not found")
        return self.files[name]

    async def exists(self, filename: str) -> Optional[str]:
        return f"{self.url_prefix}{filename}" if filename in self.files else None

    async def upload(self, media: MediaFile) -> str:
        self.files[media.filename] = media.data
        self.uploads.append(media.filename)
        return f"{self.url_prefix}{media.filename}"


class InMemoryHistorySink(BaseHistorySink):
    def __init__(self):
        self.records: List[HistoryRecord] = []
        self.fail = False

    async def append(self, record: HistoryRecord) -> None:
        if self.fail:
            raise RuntimeError("history sink broken")
        self.records.append(record)

    async def list_records(self) -> List[HistoryRecord]:
        return list(self.records)

    async def clear(self) -> None:
        self.records = []


def make_note(note_id: Optional[str] = None, content: str = "hello", **fields: Any) -> Note:
    """Create a note with a fixed creation time so fingerprints are stable."""
    fields.setdefault("title", f"Note {note_id}" if note_id else "Untitled")
    fields.setdefault("tags", ["daily"])
    fields.setdefault("created_at", "2024-03-01T09:00:00.000Z")
    return Note(id=note_id, content=content, **fields)
