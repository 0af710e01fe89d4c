"""Media store over an uploads directory on local disk."""

import asyncio
from pathlib import Path
from typing import Optional

from ..base import BaseMediaStore
from .._utils import compute_short_hash, logger
from ..backup.exceptions import MediaFetchError
from ..backup.models import MediaFile
from ..backup.utils import safe_filename


class LocalMediaStore(BaseMediaStore):
    """Serves files of ``uploads_dir`` under ``url_prefix``."""

    def __init__(self, uploads_dir: str, url_prefix: str = "/uploads/", read_timeout: float = 15.0):
        self.root = Path(uploads_dir)
        self.url_prefix = url_prefix
        self.read_timeout = read_timeout
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, reference: str) -> Path:
        name = reference.split("?", 1)[0].split("#", 1)[0].rsplit("/", 1)[-1]
        path = (self.root / name).resolve()
        if path.parent != self.root.resolve():
            raise MediaFetchError(reference, "reference escapes the uploads directory")
        return path

    async def read(self, reference: str) -> bytes:
        path = self._resolve(reference)
        if not path.is_file():
            raise MediaFetchError(reference, f"{path.name} not found in {self.root}")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(path.read_bytes), timeout=self.read_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise MediaFetchError(reference, repr(e)) from e

    async def exists(self, filename: str) -> Optional[str]:
        if (self.root / safe_filename(filename)).is_file():
            return f"{self.url_prefix}{safe_filename(filename)}"
        return None

    async def upload(self, media: MediaFile) -> str:
        name = safe_filename(media.filename)
        path = self.root / name
        if path.exists() and path.read_bytes() != media.data:
            # Different bytes under the same name: keep both
            stem, dot, ext = name.rpartition(".")
            suffix = compute_short_hash(media.source_reference)
            name = f"{stem}_{suffix}.{ext}" if dot else f"{name}_{suffix}"
            path = self.root / name
        await asyncio.to_thread(path.write_bytes, media.data)
        logger.debug(f"Stored media {name} ({len(media.data):,} bytes)")
        return f"{self.url_prefix}{name}"
