"""Best-effort ledger of backup operations."""

from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from .._utils import logger
from ..base import BaseHistorySink, BaseKVStorage
from .models import HistoryOperation, HistoryRecord, Note


class KVHistorySink(BaseHistorySink):
    """History kept in a local KV namespace, one entry per record id."""

    def __init__(self, storage: BaseKVStorage):
        self.storage = storage

    async def append(self, record: HistoryRecord) -> None:
        await self.storage.upsert({record.id: record.to_payload()})
        await self.storage.index_done_callback()

    async def list_records(self) -> List[HistoryRecord]:
        keys = await self.storage.all_keys()
        records = []
        for payload in await self.storage.get_by_ids(keys):
            if payload is None:
                continue
            try:
                records.append(HistoryRecord.model_validate(payload))
            except ValidationError as e:
                logger.debug(f"Skipping unreadable history entry: {e}")
        return records

    async def clear(self) -> None:
        await self.storage.drop()
        await self.storage.index_done_callback()


class HistoryLedger:
    """Records what happened after it happened.

    ``record`` never raises: a failing sink costs a history entry, never the
    operation being recorded.
    """

    def __init__(self, sink: BaseHistorySink):
        self.sink = sink

    async def record(
        self,
        operation: Union[HistoryOperation, str],
        notes: Iterable[Union[str, Note, None]] = (),
        details: Optional[Dict[str, Any]] = None,
        affected_note_count: Optional[int] = None,
    ) -> Optional[HistoryRecord]:
        try:
            note_ids = []
            for note in notes:
                note_id = note.id if isinstance(note, Note) else note
                if note_id is not None:
                    note_ids.append(str(note_id))
            record = HistoryRecord(
                operation=operation,
                note_ids=note_ids,
                affected_note_count=len(note_ids) if affected_note_count is None else affected_note_count,
                details=details or {},
            )
            await self.sink.append(record)
        except Exception as e:
            logger.warning(f"Failed to record {operation} history: {e}")
            return None
        logger.debug(f"History recorded: {record.operation.value} ({record.affected_note_count} notes)")
        return record

    async def list(
        self,
        operation: Optional[Union[HistoryOperation, str]] = None,
        note_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[HistoryRecord]:
        """Records newest first, optionally filtered by operation and note."""
        records = await self.sink.list_records()
        if operation is not None:
            operation = HistoryOperation(operation)
            records = [r for r in records if r.operation == operation]
        if note_id is not None:
            records = [r for r in records if note_id in r.note_ids]
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[:limit] if limit is not None else records

    async def clear(self) -> None:
        await self.sink.clear()
        logger.info("History cleared")
