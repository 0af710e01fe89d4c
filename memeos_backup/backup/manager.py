"""Backup orchestration facade used by the application."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from .._utils import logger, utc_now
from ..base import (
    BaseHistorySink,
    BaseKVStorage,
    BaseMediaStore,
    BaseNoteStore,
    BaseRemoteBackupStore,
)
from ..config import EngineConfig
from .archive import ArchiveCodec
from .exceptions import (
    BackupNotFoundError,
    CorruptBackupError,
    EmptyBackupError,
    PartialRestoreError,
    RemoteUnavailableError,
)
from .hasher import ContentHasher
from .history import HistoryLedger
from .locks import ScopeLocks
from .media import MediaExtractor
from .models import (
    Backup,
    BackupKind,
    BackupListResult,
    BackupSettings,
    BackupStats,
    CreateBackupResult,
    DeleteBackupResult,
    ExportResult,
    GetBackupResult,
    HistoryOperation,
    HistoryRecord,
    ImportResult,
    OperationResult,
    RestoreReport,
    SettingsResult,
    SyncResult,
)
from .restore import RestoreEngine
from .scheduler import AutoBackupScheduler
from .settings import SettingsStore
from .store import BackupStore
from .utils import read_archive, write_archive


class BackupManager:
    """Orchestrate backup, restore, export and import for the note store.

    Every public operation returns a result object. Expected failures (nothing
    to back up, remote down, unknown backup, corrupt backup) come back as
    ``success=False`` with an error message; malformed archives and
    programming errors still raise.
    """

    def __init__(
        self,
        note_store: BaseNoteStore,
        remote: BaseRemoteBackupStore,
        local_cache: BaseKVStorage,
        history_sink: BaseHistorySink,
        media_store: Optional[BaseMediaStore] = None,
        settings_cache: Optional[BaseKVStorage] = None,
        config: Optional[EngineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize backup manager.

        Args:
            note_store: Live note collection
            remote: Primary backup store on the server
            local_cache: Fallback cache for backups created while offline
            history_sink: Destination of history records
            media_store: Uploads store used to read and restore media
            settings_cache: Local mirror of the settings, defaults to ``local_cache``
            config: Engine configuration
            http_client: Client for fetching remote media URLs
        """
        self.config = config or EngineConfig()
        self.hasher = ContentHasher()
        self.locks = ScopeLocks()
        self.extractor = MediaExtractor(media_store, self.config.media, http_client)
        self.store = BackupStore(
            note_store, remote, local_cache, self.extractor, self.hasher, self.locks
        )
        self.restorer = RestoreEngine(note_store, media_store, remote, self.hasher)
        self.history = HistoryLedger(history_sink)
        self.settings = SettingsStore(remote, settings_cache or local_cache)
        self.codec = ArchiveCodec(self.config.archive)
        self.scheduler: Optional[AutoBackupScheduler] = None
        self._closers: List[Any] = []

    @classmethod
    def from_config(cls, config: Optional[EngineConfig] = None) -> "BackupManager":
        """Wire the HTTP collaborators and local caches described by ``config``."""
        from .._storage import StorageFactory
        from .._storage.media_local import LocalMediaStore
        from ..remote import (
            HttpBackupRemote,
            HttpHistorySink,
            HttpMediaStore,
            HttpNoteStore,
            RemoteHttpClient,
        )

        config = config or EngineConfig.from_env()
        client = RemoteHttpClient(config.remote)
        global_config = config.to_dict()

        def kv(namespace: str) -> BaseKVStorage:
            return StorageFactory.create_kv_storage(
                config.storage.kv_backend, namespace, global_config
            )

        if config.media.uploads_dir:
            media_store: BaseMediaStore = LocalMediaStore(
                config.media.uploads_dir, config.media.uploads_prefix, config.media.fetch_timeout
            )
        else:
            media_store = HttpMediaStore(client, config.media.uploads_prefix)

        manager = cls(
            note_store=HttpNoteStore(client),
            remote=HttpBackupRemote(client),
            local_cache=kv("backups"),
            history_sink=HttpHistorySink(client),
            media_store=media_store,
            settings_cache=kv("settings"),
            config=config,
        )
        manager._closers.append(client)
        return manager

    async def close(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        for closer in self._closers:
            await closer.close()
        self._closers = []

    async def create_backup(
        self,
        note_id: Optional[str] = None,
        kind: Union[BackupKind, str] = BackupKind.MANUAL,
    ) -> CreateBackupResult:
        """Back up one note, or the whole store when ``note_id`` is None."""
        logger.info(f"Starting backup of {'note ' + note_id if note_id else 'all notes'}")
        try:
            outcome = await self.store.create(note_id, BackupKind.coerce(kind))
        except (EmptyBackupError, RemoteUnavailableError) as e:
            logger.warning(f"Backup failed: {e}")
            return CreateBackupResult(success=False, error=str(e))

        backup = outcome.backup
        await self.history.record(
            HistoryOperation.BACKUP,
            backup.note_ids,
            {
                "backup_id": backup.id,
                "kind": backup.kind.value,
                "degraded": outcome.degraded,
                "media_count": len(backup.media),
            },
        )
        return CreateBackupResult(
            backup_id=backup.id,
            notes_count=len(backup.notes),
            media_count=len(backup.media),
            degraded=outcome.degraded,
        )

    async def list_backups(self) -> BackupListResult:
        listing = await self.store.list()
        return BackupListResult(backups=listing.backups, source=listing.source)

    async def get_backup(self, backup_id: str) -> GetBackupResult:
        backup = await self.store.get(backup_id)
        if backup is None:
            return GetBackupResult(success=False, error=str(BackupNotFoundError(backup_id)))
        return GetBackupResult(backup=backup)

    async def delete_backup(self, backup_id: str) -> DeleteBackupResult:
        backup = await self.store.get(backup_id)
        try:
            outcome = await self.store.delete(backup_id)
        except (BackupNotFoundError, RemoteUnavailableError) as e:
            logger.warning(f"Delete of {backup_id} failed: {e}")
            return DeleteBackupResult(success=False, error=str(e), backup_id=backup_id)

        await self.history.record(
            HistoryOperation.DELETE,
            backup.note_ids if backup is not None else [],
            {"backup_id": backup_id, "location": outcome.location},
        )
        return DeleteBackupResult(backup_id=backup_id, location=outcome.location)

    async def sync(self) -> SyncResult:
        """Reconcile the local cache against the remote store."""
        try:
            outcome = await self.store.sync()
        except RemoteUnavailableError as e:
            logger.warning(f"Sync skipped: {e}")
            return SyncResult(success=False, error=str(e))

        if outcome.removed or outcome.uploaded:
            await self.history.record(
                HistoryOperation.DELETE,
                details={
                    "reason": "sync",
                    "removed": outcome.removed,
                    "uploaded": outcome.uploaded,
                },
                affected_note_count=0,
            )
        return SyncResult(
            removed_count=outcome.removed,
            retained_count=outcome.retained,
            uploaded_count=outcome.uploaded,
        )

    async def restore_backup(self, backup: Union[str, Backup], strict: bool = False) -> RestoreReport:
        """Restore a backup by id (or a ``Backup`` already in hand).

        Raises:
            PartialRestoreError: With ``strict``, if any note failed to restore
        """
        if isinstance(backup, str):
            found = await self.store.get(backup)
            if found is None:
                return RestoreReport(
                    success=False, backup_id=backup, error=str(BackupNotFoundError(backup))
                )
            backup = found

        try:
            report = await self.restorer.restore(backup)
        except CorruptBackupError as e:
            logger.error(f"Restore refused: {e}")
            return RestoreReport(success=False, backup_id=backup.id, error=str(e))

        await self._record_restore(report)
        if strict:
            PartialRestoreError.raise_for(report)
        return report

    async def export_backups(
        self,
        backup_ids: Optional[List[str]] = None,
        output_path: Optional[Union[str, Path]] = None,
    ) -> ExportResult:
        """Encode backups into a ZIP archive, optionally writing it to disk.

        Args:
            backup_ids: Backups to export, all listed backups when None
            output_path: File or directory to write the archive to

        Returns:
            ExportResult with the archive bytes and counts
        """
        listing = await self.store.list()
        if backup_ids is None:
            selected = listing.backups
        else:
            by_id = {b.id: b for b in listing.backups}
            selected = []
            for backup_id in backup_ids:
                backup = by_id.get(backup_id) or await self.store.get(backup_id)
                if backup is None:
                    return ExportResult(success=False, error=str(BackupNotFoundError(backup_id)))
                selected.append(backup)
        if not selected:
            return ExportResult(success=False, error="No backups to export")

        now = utc_now()
        archive = self.codec.encode(
            selected, compression_enabled=self.settings.current.compression_enabled, now=now
        )
        filename = self.codec.archive_name(now)

        path = None
        if output_path is not None:
            path = Path(output_path)
            if path.is_dir() or not path.suffix:
                path = path / filename
            await write_archive(archive, path)

        note_ids = sorted({nid for b in selected for nid in b.note_ids})
        await self.history.record(
            HistoryOperation.EXPORT,
            note_ids,
            {"backup_ids": [b.id for b in selected], "filename": filename},
        )
        return ExportResult(
            archive=archive,
            filename=filename,
            path=str(path) if path is not None else None,
            size_bytes=len(archive),
            backups_count=len(selected),
            notes_count=sum(len(b.notes) for b in selected),
            media_count=len({m.source_reference for b in selected for m in b.media}),
        )

    async def import_archive(
        self,
        archive: Union[bytes, str, Path],
        restore: bool = False,
    ) -> ImportResult:
        """Import backups from an export archive.

        Every backup is verified before anything is stored. Backups already
        present (same digest and creation time) are not stored twice.

        Raises:
            InvalidArchiveError: If the archive cannot be read
        """
        if not isinstance(archive, bytes):
            archive = await read_archive(Path(archive))
        backups = self.codec.decode(archive)

        for backup in backups:
            try:
                self.hasher.verify_or_raise(backup)
            except CorruptBackupError as e:
                logger.error(f"Import refused: {e}")
                return ImportResult(success=False, error=str(e))

        existing = {(b.integrity_digest, b.created_at) for b in (await self.store.list()).backups}
        result = ImportResult()
        for backup in backups:
            if (backup.integrity_digest, backup.created_at) in existing:
                logger.info(f"Backup {backup.id} already present, not stored again")
                result.already_present_count += 1
                stored = backup
            else:
                outcome = await self.store.persist(backup)
                stored = outcome.backup
                result.backup_ids.append(stored.id)
                result.degraded_count += int(outcome.degraded)

            if restore:
                report = await self.restorer.restore(stored, mirror_remote=False)
                result.restore_reports.append(report)
                result.imported_notes_count += report.success_count
                result.skipped_count += report.skipped_duplicate_count

        await self.history.record(
            HistoryOperation.IMPORT,
            sorted({nid for b in backups for nid in b.note_ids}),
            {
                "backup_ids": result.backup_ids,
                "restored": restore,
                "imported_notes": result.imported_notes_count,
            },
        )
        logger.info(f"Imported {len(backups)} backup(s), {len(result.backup_ids)} stored")
        return result

    async def get_history(
        self,
        operation: Optional[Union[HistoryOperation, str]] = None,
        note_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[HistoryRecord]:
        try:
            return await self.history.list(operation, note_id, limit)
        except RemoteUnavailableError as e:
            logger.warning(f"History unavailable: {e}")
            return []

    async def clear_history(self) -> OperationResult:
        try:
            await self.history.clear()
        except RemoteUnavailableError as e:
            return OperationResult(success=False, error=str(e))
        return OperationResult()

    async def get_settings(self) -> SettingsResult:
        return SettingsResult(settings=await self.settings.reload())

    async def save_settings(self, settings: Union[BackupSettings, Dict[str, Any]]) -> SettingsResult:
        if not isinstance(settings, BackupSettings):
            settings = BackupSettings.model_validate(settings)
        outcome = await self.settings.save(settings)
        await self._settings_changed(outcome.settings)
        return SettingsResult(settings=outcome.settings, remote_saved=outcome.remote_saved)

    async def reset_settings(self) -> SettingsResult:
        outcome = await self.settings.reset()
        await self._settings_changed(outcome.settings)
        return SettingsResult(settings=outcome.settings, remote_saved=outcome.remote_saved)

    async def get_stats(self) -> BackupStats:
        listing = await self.store.list()
        backups = listing.backups
        history = await self.get_history()
        payload_size = sum(
            len(json.dumps(b.to_payload(), ensure_ascii=False).encode("utf-8")) for b in backups
        )
        return BackupStats(
            total_backups=len(backups),
            total_notes=len({nid for b in backups for nid in b.note_ids}),
            manual_count=sum(b.kind == BackupKind.MANUAL for b in backups),
            auto_count=sum(b.kind == BackupKind.AUTO for b in backups),
            total_history=len(history),
            last_backup_time=backups[0].created_at if backups else None,
            storage_size=payload_size,
            source=listing.source,
        )

    def create_scheduler(self) -> AutoBackupScheduler:
        """Scheduler bound to this manager; later settings changes reach it."""
        if self.scheduler is None:
            self.scheduler = AutoBackupScheduler(
                self.store,
                self.settings.current,
                self.config.scheduler,
                self.hasher,
                self.history,
            )
        return self.scheduler

    # Private helper methods

    async def _settings_changed(self, settings: BackupSettings) -> None:
        await self.history.record(HistoryOperation.SETTINGS, details=settings.to_payload())
        if self.scheduler is not None:
            await self.scheduler.apply_settings(settings)

    async def _record_restore(self, report: RestoreReport) -> None:
        created = [r.note_id for r in report.per_note_results if r.action == "created"]
        await self.history.record(
            HistoryOperation.RESTORE,
            created,
            {
                "backup_id": report.backup_id,
                "created": report.success_count,
                "skipped": report.skipped_duplicate_count,
                "failed": report.failure_count,
            },
            affected_note_count=report.success_count,
        )
