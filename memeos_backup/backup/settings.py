"""Persistence of the user's auto-backup settings."""

from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from .._utils import logger
from ..base import BaseKVStorage, BaseRemoteBackupStore
from .exceptions import RemoteUnavailableError
from .models import BackupSettings

SETTINGS_KEY = "backup_settings"


@dataclass
class SettingsSaveOutcome:
    settings: BackupSettings
    remote_saved: bool


class SettingsStore:
    """Settings live on the server with a local mirror; defaults fill the gaps."""

    def __init__(self, remote: Optional[BaseRemoteBackupStore], local_cache: BaseKVStorage):
        self.remote = remote
        self.local_cache = local_cache
        self._current: Optional[BackupSettings] = None

    @property
    def current(self) -> BackupSettings:
        return self._current if self._current is not None else BackupSettings()

    async def reload(self) -> BackupSettings:
        if self.remote is not None:
            try:
                payload = await self.remote.get_settings()
                if payload:
                    settings = BackupSettings.model_validate(payload)
                    await self._write_local(settings)
                    self._current = settings
                    return settings
            except RemoteUnavailableError as e:
                logger.warning(f"Remote settings unavailable ({e}), using local copy")
            except ValidationError as e:
                logger.warning(f"Ignoring invalid remote settings: {e}")

        cached = await self.local_cache.get_by_id(SETTINGS_KEY)
        if cached:
            try:
                self._current = BackupSettings.model_validate(cached)
                return self._current
            except ValidationError as e:
                logger.warning(f"Ignoring invalid cached settings: {e}")

        self._current = BackupSettings()
        return self._current

    async def save(self, settings: BackupSettings) -> SettingsSaveOutcome:
        await self._write_local(settings)
        self._current = settings

        remote_saved = False
        if self.remote is not None:
            try:
                await self.remote.save_settings(settings.to_payload())
                remote_saved = True
            except RemoteUnavailableError as e:
                logger.warning(f"Settings saved locally only: {e}")

        logger.info(
            f"Backup settings saved: auto={settings.auto_backup_enabled}, "
            f"interval={settings.backup_interval_minutes}min"
        )
        return SettingsSaveOutcome(settings, remote_saved)

    async def reset(self) -> SettingsSaveOutcome:
        return await self.save(BackupSettings())

    async def _write_local(self, settings: BackupSettings) -> None:
        await self.local_cache.upsert({SETTINGS_KEY: settings.to_payload()})
        await self.local_cache.index_done_callback()
