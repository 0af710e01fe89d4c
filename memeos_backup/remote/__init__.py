from .http_client import RemoteHttpClient
from .backup_api import HttpBackupRemote
from .notes_api import HttpNoteStore
from .media_api import HttpMediaStore
from .history_api import HttpHistorySink

__all__ = [
    "RemoteHttpClient",
    "HttpBackupRemote",
    "HttpNoteStore",
    "HttpMediaStore",
    "HttpHistorySink",
]
