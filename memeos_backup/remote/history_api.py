"""History endpoints of the application server."""

from typing import List

from pydantic import ValidationError

from .._utils import logger
from ..base import BaseHistorySink
from ..backup.models import HistoryRecord
from .http_client import RemoteHttpClient


class HttpHistorySink(BaseHistorySink):
    """Stores records in the server's system history.

    The server only knows ``action``, ``description`` and ``details``; the full
    record travels inside ``details`` so it reads back unchanged.
    """

    def __init__(self, client: RemoteHttpClient, list_limit: int = 1000):
        self.client = client
        self.list_limit = list_limit

    async def append(self, record: HistoryRecord) -> None:
        body = {
            "action": record.operation.value,
            "description": f"{record.operation.value}: {record.affected_note_count} note(s)",
            "details": record.to_payload(),
        }
        await self.client.request_json("POST", "/history/record", json=body)

    async def list_records(self) -> List[HistoryRecord]:
        result = await self.client.request_json(
            "GET", "/history/system", params={"limit": self.list_limit}
        )
        rows = result.get("history", []) if isinstance(result, dict) else []
        records = []
        for row in rows:
            try:
                details = HistoryRecord.from_payload(row).details
                if "operation" in details and "timestamp" in details:
                    records.append(HistoryRecord.model_validate(details))
                else:
                    records.append(HistoryRecord.from_payload(row))
            except ValidationError as e:
                logger.debug(f"Skipping unreadable history row {row.get('id')}: {e}")
        return records

    async def clear(self) -> None:
        await self.client.request_json("DELETE", "/history/clear")
