"""Selective, additive reinsertion of backed-up notes."""

from typing import Dict, List, Optional, Tuple

from .._utils import logger
from ..base import BaseMediaStore, BaseNoteStore, BaseRemoteBackupStore
from .exceptions import BackupNotFoundError, MediaFetchError, RemoteUnavailableError
from .hasher import ContentHasher
from .media import rewrite_references
from .models import Backup, MediaFile, MediaRestoreResult, NoteRestoreResult, RestoreReport
from .utils import compute_fingerprint


class RestoreEngine:
    """Restores a backup into the live note store without touching existing notes.

    A snapshot is skipped when a live note carries the same fingerprint, so
    restoring the same backup twice creates nothing the second time. Notes are
    processed one by one in snapshot order and a failing note never stops the
    rest.
    """

    def __init__(
        self,
        note_store: BaseNoteStore,
        media_store: Optional[BaseMediaStore] = None,
        remote: Optional[BaseRemoteBackupStore] = None,
        hasher: Optional[ContentHasher] = None,
    ):
        self.note_store = note_store
        self.media_store = media_store
        self.remote = remote
        self.hasher = hasher or ContentHasher()

    async def restore(self, backup: Backup, mirror_remote: bool = True) -> RestoreReport:
        """Restore ``backup`` and report per note.

        Args:
            backup: Backup to restore
            mirror_remote: Also ask the server to restore its copy (server ids only)

        Raises:
            CorruptBackupError: If the backup fails verification; nothing is changed
        """
        self.hasher.verify_or_raise(backup)
        logger.info(f"Starting restore: {backup.id} ({len(backup.notes)} notes)")

        media_results, rewrites = await self._restore_media(backup.media)

        live = self.hasher.live_fingerprints(await self.note_store.list_notes())
        results: List[NoteRestoreResult] = []
        for snapshot in backup.notes:
            content = rewrite_references(snapshot.content, rewrites)
            rewritten = compute_fingerprint(content, snapshot.tags, snapshot.created_at)
            if snapshot.fingerprint in live or rewritten in live:
                results.append(NoteRestoreResult(
                    note_id=snapshot.id, title=snapshot.title, action="skipped", reason="duplicate"
                ))
                continue

            try:
                created = await self.note_store.create_note(snapshot.as_new_note(content=content))
            except Exception as e:
                logger.error(f"Failed to restore note {snapshot.id} from {backup.id}: {e}")
                results.append(NoteRestoreResult(
                    note_id=snapshot.id, title=snapshot.title, action="failed", error=str(e)
                ))
                continue

            live.update({snapshot.fingerprint, rewritten, created.content_fingerprint()})
            results.append(NoteRestoreResult(
                note_id=snapshot.id, title=snapshot.title, action="created", new_note_id=created.id
            ))

        if mirror_remote and self.remote is not None and not backup.is_local:
            try:
                await self.remote.restore_backup(backup.id)
            except (RemoteUnavailableError, BackupNotFoundError) as e:
                logger.warning(f"Server-side restore of {backup.id} skipped: {e}")

        report = RestoreReport(
            backup_id=backup.id,
            total_notes=len(backup.notes),
            success_count=sum(r.action == "created" for r in results),
            failure_count=sum(r.action == "failed" for r in results),
            skipped_duplicate_count=sum(r.action == "skipped" for r in results),
            per_note_results=results,
            media_results=media_results,
        )
        logger.info(
            f"Restore complete: {backup.id} ({report.success_count} created, "
            f"{report.skipped_duplicate_count} skipped, {report.failure_count} failed)"
        )
        return report

    async def _restore_media(self, media: List[MediaFile]) -> Tuple[List[MediaRestoreResult], Dict[str, str]]:
        """Make every media file available again, returning reference rewrites."""
        results: List[MediaRestoreResult] = []
        rewrites: Dict[str, str] = {}
        for item in media:
            if self.media_store is None:
                results.append(MediaRestoreResult(
                    filename=item.filename, original_url=item.source_reference,
                    success=False, error="no media store configured",
                ))
                continue
            try:
                existing = await self.media_store.exists(item.filename)
                url = existing or await self.media_store.upload(item)
            except (RemoteUnavailableError, MediaFetchError, OSError) as e:
                logger.warning(f"Could not restore media {item.filename}: {e}")
                results.append(MediaRestoreResult(
                    filename=item.filename, original_url=item.source_reference,
                    success=False, error=str(e),
                ))
                continue

            if url != item.source_reference:
                rewrites[item.source_reference] = url
            results.append(MediaRestoreResult(
                filename=item.filename, original_url=item.source_reference,
                new_url=url, skipped=bool(existing),
            ))
        return results, rewrites
