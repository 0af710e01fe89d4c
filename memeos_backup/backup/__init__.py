from .exceptions import (
    BackupError,
    BackupNotFoundError,
    CorruptBackupError,
    EmptyBackupError,
    InvalidArchiveError,
    MediaFetchError,
    PartialRestoreError,
    RemoteUnavailableError,
)
from .models import (
    Backup,
    BackupKind,
    BackupSettings,
    HistoryOperation,
    HistoryRecord,
    MediaFile,
    Note,
    NoteSnapshot,
    RestoreReport,
)
from .hasher import ContentHasher
from .media import MediaExtractor
from .archive import ArchiveCodec
from .store import BackupStore
from .restore import RestoreEngine
from .history import HistoryLedger, KVHistorySink
from .settings import SettingsStore
from .scheduler import AutoBackupScheduler, SchedulerState
from .manager import BackupManager

__all__ = [
    "ArchiveCodec",
    "AutoBackupScheduler",
    "Backup",
    "BackupError",
    "BackupKind",
    "BackupManager",
    "BackupNotFoundError",
    "BackupSettings",
    "BackupStore",
    "ContentHasher",
    "CorruptBackupError",
    "EmptyBackupError",
    "HistoryLedger",
    "HistoryOperation",
    "HistoryRecord",
    "InvalidArchiveError",
    "KVHistorySink",
    "MediaExtractor",
    "MediaFetchError",
    "MediaFile",
    "Note",
    "NoteSnapshot",
    "PartialRestoreError",
    "RemoteUnavailableError",
    "RestoreEngine",
    "RestoreReport",
    "SchedulerState",
    "SettingsStore",
]
