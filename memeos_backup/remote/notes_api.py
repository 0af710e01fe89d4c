"""Note endpoints of the application server."""

from typing import List, Optional

from .._utils import logger
from ..base import BaseNoteStore
from ..backup.exceptions import RemoteUnavailableError
from ..backup.models import Note
from .http_client import RemoteHttpClient


class HttpNoteStore(BaseNoteStore):
    def __init__(self, client: RemoteHttpClient, page_size: int = 100):
        self.client = client
        self.page_size = page_size

    async def list_notes(self) -> List[Note]:
        notes: List[Note] = []
        page = 1
        while True:
            result = await self.client.request_json(
                "GET", "/notes/my", params={"page": page, "limit": self.page_size}
            )
            if isinstance(result, list):
                notes.extend(Note.model_validate(n) for n in result)
                break
            notes.extend(Note.model_validate(n) for n in result.get("notes", []))
            if not result.get("pagination", {}).get("hasNext"):
                break
            page += 1
        logger.debug(f"Fetched {len(notes)} notes from the note store")
        return notes

    async def get_note(self, note_id: str) -> Optional[Note]:
        try:
            result = await self.client.request_json("GET", f"/notes/{note_id}")
        except RemoteUnavailableError as e:
            if e.status_code == 404:
                return None
            raise
        return Note.model_validate(result)

    async def create_note(self, note: Note) -> Note:
        body = note.model_dump(exclude={"id"}, exclude_none=True)
        result = await self.client.request_json("POST", "/notes", json=body)
        return Note.model_validate(result)
