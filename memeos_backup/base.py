"""Storage and collaborator contracts."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .backup.models import HistoryRecord, MediaFile, Note


@dataclass
class StorageNameSpace:
    namespace: str
    global_config: dict

    async def index_done_callback(self):
        """commit the storage operations after indexing"""
        pass


@dataclass
class BaseKVStorage(StorageNameSpace):
    async def all_keys(self) -> List[str]:
        raise NotImplementedError

    async def get_by_id(self, id: str) -> Optional[Any]:
        raise NotImplementedError

    async def get_by_ids(
        self, ids: List[str], fields: Optional[List[str]] = None
    ) -> List[Optional[Any]]:
        raise NotImplementedError

    async def filter_keys(self, data: List[str]) -> set:
        """return un-exist keys"""
        raise NotImplementedError

    async def upsert(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def delete(self, ids: List[str]) -> int:
        """remove keys, return how many existed"""
        raise NotImplementedError

    async def drop(self) -> None:
        raise NotImplementedError


class BaseNoteStore(ABC):
    """The application's live note collection."""

    @abstractmethod
    async def list_notes(self) -> List["Note"]:
        pass

    @abstractmethod
    async def get_note(self, note_id: str) -> Optional["Note"]:
        pass

    @abstractmethod
    async def create_note(self, note: "Note") -> "Note":
        """Insert a new note; the store assigns the id."""
        pass


class BaseRemoteBackupStore(ABC):
    """Primary backup persistence on the application server.

    Every method raises ``RemoteUnavailableError`` when the server cannot be
    reached or answers with an error.
    """

    @abstractmethod
    async def create_backup(self, payload: Dict[str, Any]) -> str:
        """Persist a canonical backup payload, return the server-assigned id."""
        pass

    @abstractmethod
    async def list_backups(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def delete_backup(self, backup_id: str) -> None:
        pass

    @abstractmethod
    async def restore_backup(self, backup_id: str) -> None:
        pass

    @abstractmethod
    async def get_settings(self) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def save_settings(self, settings: Dict[str, Any]) -> None:
        pass


class BaseMediaStore(ABC):
    """Where media bytes live: the uploads directory or the server behind it."""

    @abstractmethod
    async def read(self, reference: str) -> bytes:
        """Return the bytes behind an uploads reference.

        Raises ``MediaFetchError`` when the reference cannot be read.
        """
        pass

    @abstractmethod
    async def exists(self, filename: str) -> Optional[str]:
        """Return the served URL of ``filename`` if already stored."""
        pass

    @abstractmethod
    async def upload(self, media: "MediaFile") -> str:
        """Store the media file and return the URL it is served under."""
        pass


class BaseHistorySink(ABC):
    """Append-only destination for history records."""

    @abstractmethod
    async def append(self, record: "HistoryRecord") -> None:
        pass

    @abstractmethod
    async def list_records(self) -> List["HistoryRecord"]:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass
