"""Remote-first backup persistence with a local fallback cache."""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .._utils import logger, utc_now
from ..base import BaseKVStorage, BaseNoteStore, BaseRemoteBackupStore
from .exceptions import BackupNotFoundError, EmptyBackupError, RemoteUnavailableError
from .hasher import ContentHasher
from .locks import ScopeLocks
from .media import MediaExtractor
from .models import Backup, BackupKind
from .utils import generate_backup_id, is_local_backup_id

REMOTE = "remote"
LOCAL = "local"


@dataclass
class CreateOutcome:
    backup: Backup
    degraded: bool = False


@dataclass
class BackupListing:
    backups: List[Backup]
    source: str


@dataclass
class DeleteOutcome:
    backup_id: str
    location: str


@dataclass
class SyncOutcome:
    removed: int = 0
    retained: int = 0
    uploaded: int = 0


@dataclass(frozen=True)
class BackupEvent:
    kind: str  # created, deleted, synced
    backup_id: str
    degraded: bool = False


class BackupStore:
    """Creates, lists and deletes backups against the remote primary.

    Whenever the remote is unreachable, writes land in the local cache under a
    ``local_`` id and reads come from the cache. Remote and local results are
    never merged: a listing states which side it came from.
    """

    def __init__(
        self,
        note_store: BaseNoteStore,
        remote: BaseRemoteBackupStore,
        local_cache: BaseKVStorage,
        extractor: Optional[MediaExtractor] = None,
        hasher: Optional[ContentHasher] = None,
        locks: Optional[ScopeLocks] = None,
    ):
        self.note_store = note_store
        self.remote = remote
        self.local_cache = local_cache
        self.extractor = extractor or MediaExtractor()
        self.hasher = hasher or ContentHasher()
        self.locks = locks or ScopeLocks()
        self._observers: List[Callable[[BackupEvent], Any]] = []

    def subscribe(self, callback: Callable[[BackupEvent], Any]) -> Callable[[], None]:
        """Register an observer, return a function that removes it."""
        self._observers.append(callback)
        return lambda: self._observers.remove(callback)

    async def build(self, note_id: Optional[str] = None, kind: BackupKind = BackupKind.MANUAL) -> Backup:
        """Snapshot the current notes of a scope without persisting anything.

        Raises:
            EmptyBackupError: If the scope holds no notes
        """
        if note_id is not None:
            note = await self.note_store.get_note(note_id)
            notes = [note] if note is not None else []
        else:
            notes = await self.note_store.list_notes()
        if not notes:
            raise EmptyBackupError(note_id)

        snapshots = self.hasher.snapshot_all(notes)
        media = await self.extractor.extract(snapshots)
        return Backup(
            id="",
            created_at=utc_now(),
            kind=BackupKind.coerce(kind),
            note_id=note_id,
            notes=snapshots,
            media=media,
            integrity_digest=self.hasher.integrity_digest(snapshots),
        )

    async def create(self, note_id: Optional[str] = None, kind: BackupKind = BackupKind.MANUAL) -> CreateOutcome:
        async with self.locks.hold(note_id):
            backup = await self.build(note_id, kind)
            return await self.persist(backup)

    async def persist(self, backup: Backup) -> CreateOutcome:
        """Store an already built backup, remote first."""
        try:
            remote_id = await self.remote.create_backup(backup.to_payload())
        except RemoteUnavailableError as e:
            local_id = generate_backup_id()
            stored = backup.model_copy(update={"id": local_id})
            await self.local_cache.upsert({local_id: stored.to_payload()})
            await self.local_cache.index_done_callback()
            logger.warning(f"Remote unavailable ({e}), backup kept locally as {local_id}")
            outcome = CreateOutcome(stored, degraded=True)
        else:
            stored = backup.model_copy(update={"id": remote_id})
            logger.info(
                f"Backup created: {remote_id} ({len(stored.notes)} notes, {len(stored.media)} media)"
            )
            outcome = CreateOutcome(stored, degraded=False)

        await self._notify(BackupEvent("created", outcome.backup.id, outcome.degraded))
        return outcome

    async def list(self) -> BackupListing:
        """All backups, newest first, from the remote or else the local cache."""
        try:
            rows = await self.remote.list_backups()
        except RemoteUnavailableError as e:
            logger.warning(f"Remote unavailable ({e}), listing local backups")
            return BackupListing(await self.list_local(), LOCAL)
        return BackupListing(self._parse(rows, REMOTE), REMOTE)

    async def list_local(self) -> List[Backup]:
        keys = await self.local_cache.all_keys()
        payloads = await self.local_cache.get_by_ids(keys)
        rows = []
        for key, payload in zip(keys, payloads):
            if isinstance(payload, dict):
                rows.append({**payload, "id": payload.get("id") or key})
        return self._parse(rows, LOCAL)

    async def get(self, backup_id: str) -> Optional[Backup]:
        if not is_local_backup_id(backup_id):
            try:
                for row in await self.remote.list_backups():
                    backup = self._parse_one(row, REMOTE)
                    if backup is not None and backup.id == backup_id:
                        return backup
            except RemoteUnavailableError as e:
                logger.warning(f"Remote unavailable ({e}), looking up {backup_id} locally")
        payload = await self.local_cache.get_by_id(backup_id)
        if not isinstance(payload, dict):
            return None
        return self._parse_one({**payload, "id": payload.get("id") or backup_id}, LOCAL)

    async def delete(self, backup_id: str) -> DeleteOutcome:
        """Delete remotely; fall back to the local cache only if that fails.

        Raises:
            BackupNotFoundError: If neither side has the backup
            RemoteUnavailableError: If the remote is down and the cache lacks it
        """
        try:
            await self.remote.delete_backup(backup_id)
        except (RemoteUnavailableError, BackupNotFoundError) as e:
            removed = await self.local_cache.delete([backup_id])
            if not removed:
                raise
            await self.local_cache.index_done_callback()
            logger.info(f"Deleted local backup: {backup_id} (remote: {e})")
            outcome = DeleteOutcome(backup_id, LOCAL)
        else:
            logger.info(f"Deleted backup: {backup_id}")
            outcome = DeleteOutcome(backup_id, REMOTE)

        await self._notify(BackupEvent("deleted", backup_id))
        return outcome

    async def sync(self) -> SyncOutcome:
        """Reconcile the local cache against the remote listing.

        Raises:
            RemoteUnavailableError: If the remote cannot be listed
        """
        remote_backups = self._parse(await self.remote.list_backups(), REMOTE)
        remote_ids = {b.id for b in remote_backups}
        remote_signatures = {(b.integrity_digest, b.created_at) for b in remote_backups}

        outcome = SyncOutcome()
        stale: List[str] = []
        for backup in await self.list_local():
            if not backup.is_local:
                if backup.id in remote_ids:
                    outcome.retained += 1
                else:
                    stale.append(backup.id)
                continue

            if (backup.integrity_digest, backup.created_at) in remote_signatures:
                stale.append(backup.id)
                continue
            try:
                await self.remote.create_backup(backup.to_payload())
            except RemoteUnavailableError as e:
                logger.warning(f"Could not upload offline backup {backup.id}: {e}")
                outcome.retained += 1
            else:
                outcome.uploaded += 1
                stale.append(backup.id)

        if stale:
            outcome.removed = await self.local_cache.delete(stale)
            await self.local_cache.index_done_callback()

        logger.info(
            f"Sync complete: {outcome.removed} removed, {outcome.retained} retained, "
            f"{outcome.uploaded} uploaded"
        )
        await self._notify(BackupEvent("synced", ""))
        return outcome

    # Private helper methods

    def _parse_one(self, row: Dict[str, Any], source: str) -> Optional[Backup]:
        try:
            return Backup.from_payload(row)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Skipping unreadable {source} backup {row.get('id')}: {e}")
            return None

    def _parse(self, rows: Iterable[Dict[str, Any]], source: str) -> List[Backup]:
        backups = [b for b in (self._parse_one(row, source) for row in rows) if b is not None]
        backups.sort(key=lambda b: b.created_at, reverse=True)
        return backups

    async def _notify(self, event: BackupEvent) -> None:
        for callback in list(self._observers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Backup observer {callback!r} failed on {event.kind}: {e}")
