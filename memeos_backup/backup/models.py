"""Data models for backup/restore operations."""

import base64
import binascii
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .._utils import format_timestamp, logger, parse_timestamp, utc_now
from .utils import (
    compute_document_digest,
    compute_fingerprint,
    guess_content_type,
    is_legacy_digest,
    is_local_backup_id,
    legacy_client_hash,
)

SCHEMA_VERSION = "2.0"


class BackupKind(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"

    @classmethod
    def coerce(cls, value: Any) -> "BackupKind":
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.lower() in ("auto", "automatic", "auto_backup"):
            return cls.AUTO
        # "backup", "full_export" and other legacy labels were all user-initiated
        return cls.MANUAL


class HistoryOperation(str, Enum):
    BACKUP = "backup"
    RESTORE = "restore"
    DELETE = "delete"
    SETTINGS = "settings"
    EXPORT = "export"
    IMPORT = "import"


_LEGACY_HISTORY_ACTIONS = {
    "create": HistoryOperation.BACKUP,
    "auto_backup": HistoryOperation.BACKUP,
    "settings_update": HistoryOperation.SETTINGS,
    "export_single": HistoryOperation.EXPORT,
    "export_all": HistoryOperation.EXPORT,
}


def _first(sources: List[Dict[str, Any]], *keys: str) -> Any:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value is not None:
                return value
    return None


class Note(BaseModel):
    """A note as returned by the note store."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    title: str = ""
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    # Kept verbatim: fingerprints hash the store's own timestamp string
    created_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    updated_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "updatedAt")
    )
    is_pinned: bool = Field(default=False, validation_alias=AliasChoices("is_pinned", "isPinned"))
    mood: Optional[str] = None
    weather: Optional[str] = None

    @field_validator("id", "created_at", "updated_at", "mood", "weather", mode="before")
    @classmethod
    def _coerce_optional_str(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, datetime):
            return format_timestamp(value)
        return str(value)

    @field_validator("title", "content", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> List[str]:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            # The server stores tags as a JSON array string
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return [t.strip() for t in value.split(",") if t.strip()]
            return [str(t) for t in parsed] if isinstance(parsed, list) else [str(parsed)]
        return [str(t) for t in value]

    @field_validator("is_pinned", mode="before")
    @classmethod
    def _coerce_pinned(cls, value: Any) -> bool:
        return bool(value) if value is not None else False

    def content_fingerprint(self) -> str:
        return compute_fingerprint(self.content, self.tags, self.created_at)


class NoteSnapshot(Note):
    """A note frozen inside a backup, stamped with its fingerprint."""

    fingerprint: str = Field(
        default="",
        validation_alias=AliasChoices("fingerprint", "content_hash", "_hash"),
        serialization_alias="content_hash",
    )

    @model_validator(mode="after")
    def _stamp_missing_fingerprint(self) -> "NoteSnapshot":
        if not self.fingerprint:
            self.fingerprint = compute_fingerprint(self.content, self.tags, self.created_at)
        return self

    @classmethod
    def of(cls, note: Note) -> "NoteSnapshot":
        return cls(**note.model_dump(exclude={"fingerprint"}), fingerprint=note.content_fingerprint())

    def as_new_note(self, content: Optional[str] = None) -> Note:
        """A copy suitable for ``create_note``: no id, optionally rewritten content."""
        data = self.model_dump(exclude={"id", "fingerprint"})
        if content is not None:
            data["content"] = content
        return Note(**data)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class MediaFile(BaseModel):
    """Binary media embedded in a backup, keyed by its source reference."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str
    source_reference: str = Field(
        validation_alias=AliasChoices("source_reference", "url", "originalUrl")
    )
    data: bytes = Field(default=b"", validation_alias=AliasChoices("data", "content"), repr=False)
    content_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("content_type", "contentType")
    )
    size: int = 0

    @field_validator("data", mode="before")
    @classmethod
    def _decode_content(cls, value: Any) -> bytes:
        if value is None:
            return b""
        if isinstance(value, str):
            if value.startswith("data:") and "," in value:
                value = value.split(",", 1)[1]
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"media content is not valid base64: {e}")
        return value

    @model_validator(mode="after")
    def _fill_defaults(self) -> "MediaFile":
        if not self.content_type:
            self.content_type = guess_content_type(self.filename)
        if not self.size and self.data:
            self.size = len(self.data)
        return self

    def to_payload(self, include_content: bool = True) -> Dict[str, Any]:
        payload = {
            "filename": self.filename,
            "url": self.source_reference,
            "contentType": self.content_type,
            "size": self.size,
        }
        if include_content:
            payload["content"] = base64.b64encode(self.data).decode("ascii")
        return payload


class Backup(BaseModel):
    """A point-in-time snapshot of one note or the whole store."""

    id: str
    created_at: datetime
    kind: BackupKind = BackupKind.MANUAL
    schema_version: str = SCHEMA_VERSION
    note_id: Optional[str] = None
    notes: List[NoteSnapshot] = Field(default_factory=list)
    media: List[MediaFile] = Field(default_factory=list)
    integrity_digest: Optional[str] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError("backup has no creation time")
        return parsed

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> BackupKind:
        return BackupKind.coerce(value)

    @field_validator("id", "note_id", "schema_version", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Optional[str]:
        return value if value is None or isinstance(value, str) else str(value)

    @property
    def is_local(self) -> bool:
        return is_local_backup_id(self.id)

    @property
    def note_ids(self) -> List[str]:
        return [s.id for s in self.notes if s.id is not None]

    def snapshot_for(self, note_id: str) -> Optional[NoteSnapshot]:
        for snapshot in self.notes:
            if snapshot.id == note_id:
                return snapshot
        return None

    def covers(self, note_id: str) -> bool:
        return self.note_id == note_id or self.snapshot_for(note_id) is not None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Backup":
        """Normalize any stored backup shape into a ``Backup``.

        Server list rows carry the server id and bookkeeping at top level with
        the client document under ``data``; older clients wrote flat documents
        with snake_case keys. Identity comes from the top level, everything
        describing the snapshot prefers ``data``.

        Raises:
            ValueError: If the payload has no id or creation time
        """
        if not isinstance(payload, dict):
            raise ValueError(f"backup payload must be an object, got {type(payload).__name__}")

        data = payload.get("data")
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                data = None
        if not isinstance(data, dict):
            data = {}

        outer_first = [payload, data]
        inner_first = [data, payload]

        backup_id = _first(outer_first, "id", "backup_id", "backupId")
        if backup_id is None:
            raise ValueError("backup payload has no id")

        raw_notes = _first(inner_first, "notes") or []
        notes = [NoteSnapshot.model_validate(n) for n in raw_notes]
        digest = _first(inner_first, "hash", "integrity_digest", "integrityDigest")
        if is_legacy_digest(digest) and legacy_client_hash(raw_notes) == digest:
            # Verified once against the raw notes, then resealed with sha256
            logger.debug(f"Backup {backup_id} carries a verified legacy hash, resealing")
            digest = compute_document_digest([s.to_payload() for s in notes])

        media_entries = _first(inner_first, "mediaFiles", "media_files", "media") or []
        return cls(
            id=backup_id,
            created_at=_first(inner_first, "backupTime", "timestamp", "created_at", "createdAt"),
            kind=_first(outer_first, "type", "backup_type", "backupType"),
            schema_version=_first(inner_first, "version", "schema_version", "schemaVersion") or SCHEMA_VERSION,
            note_id=_first(inner_first, "noteId", "note_id"),
            notes=notes,
            media=[MediaFile.model_validate(m) for m in media_entries],
            integrity_digest=digest,
        )

    def to_payload(self, include_media_content: bool = True) -> Dict[str, Any]:
        """Canonical wire document."""
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.created_at),
            "type": self.kind.value,
            "version": self.schema_version,
            "noteId": self.note_id,
            "notes": [s.to_payload() for s in self.notes],
            "mediaFiles": [m.to_payload(include_content=include_media_content) for m in self.media],
            "hash": self.integrity_digest,
        }


class HistoryRecord(BaseModel):
    """One entry of the backup operation history."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=utc_now)
    operation: HistoryOperation
    affected_note_count: int = 0
    note_ids: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value) or utc_now()

    @field_validator("operation", mode="before")
    @classmethod
    def _coerce_operation(cls, value: Any) -> Any:
        if isinstance(value, str) and value in _LEGACY_HISTORY_ACTIONS:
            return _LEGACY_HISTORY_ACTIONS[value]
        return value

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("note_ids", mode="before")
    @classmethod
    def _coerce_note_ids(cls, value: Any) -> List[str]:
        if value is None:
            return []
        return [str(v) for v in value]

    @field_validator("details", mode="before")
    @classmethod
    def _coerce_details(cls, value: Any) -> Dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {"description": value}
        return value if isinstance(value, dict) else {"value": value}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "HistoryRecord":
        """Accept both our records and the server's ``system_history`` rows."""
        details = payload.get("details")
        note_ids = payload.get("note_ids") or payload.get("noteIds")
        if note_ids is None and payload.get("note_id") is not None:
            note_ids = [payload["note_id"]]
        fields = {
            "operation": payload.get("operation") or payload.get("action"),
            "timestamp": payload.get("timestamp") or payload.get("created_at"),
            "affected_note_count": payload.get("affected_note_count")
            or payload.get("affectedNoteCount")
            or len(note_ids or []),
            "note_ids": note_ids,
            "details": details,
        }
        if payload.get("id") is not None:
            fields["id"] = payload["id"]
        return cls(**fields)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class BackupSettings(BaseModel):
    """User-facing auto-backup preferences."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    auto_backup_enabled: bool = Field(default=True, alias="autoBackup")
    backup_interval_minutes: int = Field(default=10, alias="backupInterval", gt=0)
    compression_enabled: bool = Field(default=True, alias="compressionEnabled")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# Results returned by BackupManager


class OperationResult(BaseModel):
    success: bool = True
    error: Optional[str] = None


class CreateBackupResult(OperationResult):
    backup_id: Optional[str] = None
    notes_count: int = 0
    media_count: int = 0
    degraded: bool = False


class BackupListResult(OperationResult):
    backups: List[Backup] = Field(default_factory=list)
    source: Optional[str] = None


class GetBackupResult(OperationResult):
    backup: Optional[Backup] = None


class DeleteBackupResult(OperationResult):
    backup_id: str
    location: Optional[str] = None


class SyncResult(OperationResult):
    removed_count: int = 0
    retained_count: int = 0
    uploaded_count: int = 0


class NoteRestoreResult(BaseModel):
    note_id: Optional[str] = Field(None, description="Id of the note inside the backup")
    title: str = ""
    action: str = Field(..., description="created, skipped or failed")
    new_note_id: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class MediaRestoreResult(BaseModel):
    filename: str
    original_url: str
    new_url: Optional[str] = None
    success: bool = True
    skipped: bool = False
    error: Optional[str] = None


class RestoreReport(OperationResult):
    backup_id: str
    total_notes: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_duplicate_count: int = 0
    per_note_results: List[NoteRestoreResult] = Field(default_factory=list)
    media_results: List[MediaRestoreResult] = Field(default_factory=list)


class ExportResult(OperationResult):
    archive: Optional[bytes] = Field(None, repr=False)
    filename: Optional[str] = None
    path: Optional[str] = None
    size_bytes: int = 0
    backups_count: int = 0
    notes_count: int = 0
    media_count: int = 0


class ImportResult(OperationResult):
    backup_ids: List[str] = Field(default_factory=list)
    degraded_count: int = 0
    already_present_count: int = 0
    imported_notes_count: int = 0
    skipped_count: int = 0
    restore_reports: List[RestoreReport] = Field(default_factory=list)


class SettingsResult(OperationResult):
    settings: BackupSettings = Field(default_factory=BackupSettings)
    remote_saved: Optional[bool] = None


class BackupStats(OperationResult):
    total_backups: int = 0
    total_notes: int = 0
    manual_count: int = 0
    auto_count: int = 0
    total_history: int = 0
    last_backup_time: Optional[datetime] = None
    storage_size: int = 0
    source: Optional[str] = None
