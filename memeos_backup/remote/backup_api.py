"""Backup endpoints of the application server."""

from typing import Any, Dict, List, Optional

from .._utils import logger
from ..base import BaseRemoteBackupStore
from ..backup.exceptions import BackupNotFoundError, RemoteUnavailableError
from .http_client import RemoteHttpClient


class HttpBackupRemote(BaseRemoteBackupStore):
    """Remote primary store backed by ``/backup/*``.

    The server keeps bookkeeping columns (id, type, creation time) at the top
    level of each row and the client document under ``data``;
    ``Backup.from_payload`` reads both.
    """

    def __init__(self, client: RemoteHttpClient, list_limit: int = 1000):
        self.client = client
        self.list_limit = list_limit

    async def create_backup(self, payload: Dict[str, Any]) -> str:
        kind = payload.get("type", "manual")
        document = {k: v for k, v in payload.items() if k != "id"}
        document["backupTime"] = payload.get("timestamp")
        body = {
            "backupType": kind,
            "snapshotType": "incremental" if kind == "auto" else "full",
            "description": f"{kind} backup of {len(payload.get('notes', []))} note(s)",
            "data": document,
        }
        result = await self.client.request_json("POST", "/backup/create", json=body)
        backup_id = result.get("backupId") if isinstance(result, dict) else None
        if not backup_id:
            raise RemoteUnavailableError("Server accepted the backup but returned no id")
        logger.debug(f"Remote backup created: {backup_id}")
        return str(backup_id)

    async def list_backups(self) -> List[Dict[str, Any]]:
        result = await self.client.request_json(
            "GET", "/backup/list", params={"limit": self.list_limit}
        )
        if not isinstance(result, dict) or not isinstance(result.get("backups"), list):
            raise RemoteUnavailableError("Malformed backup list response")
        return result["backups"]

    async def delete_backup(self, backup_id: str) -> None:
        try:
            await self.client.request_json("DELETE", f"/backup/delete/{backup_id}")
        except RemoteUnavailableError as e:
            if e.status_code == 404:
                raise BackupNotFoundError(backup_id) from e
            raise

    async def restore_backup(self, backup_id: str) -> None:
        try:
            await self.client.request_json("POST", f"/backup/restore/{backup_id}")
        except RemoteUnavailableError as e:
            if e.status_code == 404:
                raise BackupNotFoundError(backup_id) from e
            raise

    async def get_settings(self) -> Optional[Dict[str, Any]]:
        result = await self.client.request_json("GET", "/backup/settings")
        settings = result.get("settings") if isinstance(result, dict) else None
        return settings if isinstance(settings, dict) else None

    async def save_settings(self, settings: Dict[str, Any]) -> None:
        await self.client.request_json("POST", "/backup/settings", json=settings)
