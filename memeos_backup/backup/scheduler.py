"""Periodic auto-backup of changed notes with per-note retention."""

import asyncio
from enum import Enum
from typing import Dict, List, Optional, Set

from .._utils import logger
from ..config import SchedulerConfig
from .exceptions import BackupError
from .hasher import ContentHasher
from .history import HistoryLedger
from .models import Backup, BackupKind, BackupSettings, HistoryOperation
from .store import BackupStore, CreateOutcome


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"


class AutoBackupScheduler:
    """Backs up tracked notes whose content changed since their last backup.

    ``stop`` waits for a running tick to finish; the timer is only ever
    cancelled between ticks.
    """

    def __init__(
        self,
        store: BackupStore,
        settings: Optional[BackupSettings] = None,
        config: Optional[SchedulerConfig] = None,
        hasher: Optional[ContentHasher] = None,
        ledger: Optional[HistoryLedger] = None,
    ):
        self.store = store
        self.settings = settings or BackupSettings()
        self.config = config or SchedulerConfig()
        self.hasher = hasher or ContentHasher()
        self.ledger = ledger
        self._tracked: Optional[Set[str]] = None
        self._state = SchedulerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def interval_seconds(self) -> float:
        return self.settings.backup_interval_minutes * 60.0

    @property
    def tracked(self) -> Optional[Set[str]]:
        """Explicitly tracked note ids, ``None`` when every note is tracked."""
        return set(self._tracked) if self._tracked is not None else None

    def track(self, note_id: str) -> None:
        if self._tracked is None:
            self._tracked = set()
        self._tracked.add(note_id)

    def untrack(self, note_id: str) -> None:
        if self._tracked is not None:
            self._tracked.discard(note_id)

    async def start(self) -> None:
        if not self.settings.auto_backup_enabled:
            logger.info("Auto backup disabled, scheduler stays idle")
            return
        if self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._state = SchedulerState.ARMED
        self._task = asyncio.create_task(self._run(self._stop_event))
        logger.info(f"Auto backup armed every {self.settings.backup_interval_minutes} min")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None
        self._state = SchedulerState.IDLE
        logger.info("Auto backup stopped")

    async def apply_settings(self, settings: BackupSettings) -> None:
        previous = self.settings
        self.settings = settings
        if not settings.auto_backup_enabled:
            await self.stop()
        elif self._task is None:
            await self.start()
        elif previous.backup_interval_minutes != settings.backup_interval_minutes:
            await self.stop()
            await self.start()

    async def tick(self) -> List[CreateOutcome]:
        """Run one pass over the tracked notes, return the backups created."""
        if self._tracked is not None:
            note_ids = sorted(self._tracked)
        else:
            note_ids = [n.id for n in await self.store.note_store.list_notes() if n.id is not None]

        latest = self._latest_fingerprints((await self.store.list()).backups)
        outcomes = []
        for note_id in note_ids:
            note = await self.store.note_store.get_note(note_id)
            if note is None:
                logger.debug(f"Tracked note {note_id} no longer exists")
                continue
            if latest.get(note_id) == self.hasher.fingerprint(note):
                continue

            try:
                outcome = await self.store.create(note_id, kind=BackupKind.AUTO)
            except BackupError as e:
                logger.warning(f"Auto backup of note {note_id} failed: {e}")
                continue

            outcomes.append(outcome)
            if self.ledger is not None:
                await self.ledger.record(
                    HistoryOperation.BACKUP,
                    [note_id],
                    {"backup_id": outcome.backup.id, "kind": "auto", "degraded": outcome.degraded},
                )
            try:
                await self.enforce_retention(note_id)
            except BackupError as e:
                logger.warning(f"Retention for note {note_id} failed: {e}")

        if outcomes:
            logger.info(f"Auto backup tick created {len(outcomes)} backup(s)")
        return outcomes

    async def enforce_retention(self, note_id: str) -> List[str]:
        """Delete the oldest auto backups of ``note_id`` beyond the retention limit."""
        autos = [
            b for b in (await self.store.list()).backups
            if b.kind == BackupKind.AUTO and b.note_id == note_id
        ]
        autos.sort(key=lambda b: b.created_at, reverse=True)

        deleted = []
        for backup in autos[self.config.retention_per_note:]:
            try:
                await self.store.delete(backup.id)
            except BackupError as e:
                logger.warning(f"Retention could not delete {backup.id}: {e}")
                continue
            deleted.append(backup.id)

        if deleted:
            logger.info(f"Retention removed {len(deleted)} auto backup(s) of note {note_id}")
            if self.ledger is not None:
                await self.ledger.record(
                    HistoryOperation.DELETE, [note_id], {"backup_ids": deleted, "reason": "retention"}
                )
        return deleted

    # Private helper methods

    @staticmethod
    def _latest_fingerprints(backups: List[Backup]) -> Dict[str, str]:
        """Fingerprint of each note in the most recent backup that contains it."""
        latest: Dict[str, str] = {}
        for backup in sorted(backups, key=lambda b: b.created_at, reverse=True):
            for snapshot in backup.notes:
                if snapshot.id is not None and snapshot.id not in latest:
                    latest[snapshot.id] = snapshot.fingerprint
        return latest

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

            self._state = SchedulerState.FIRING
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Auto backup tick failed: {e}")
            finally:
                self._state = SchedulerState.ARMED
