"""Upload endpoints of the application server."""

from typing import Optional

from .._utils import logger
from ..base import BaseMediaStore
from ..backup.exceptions import MediaFetchError, RemoteUnavailableError
from ..backup.models import MediaFile
from .http_client import RemoteHttpClient


class HttpMediaStore(BaseMediaStore):
    """Reads ``/uploads/`` files from the server and uploads through ``/upload``."""

    def __init__(self, client: RemoteHttpClient, uploads_prefix: str = "/uploads/"):
        self.client = client
        self.uploads_prefix = uploads_prefix

    def _served_path(self, reference: str) -> str:
        path = reference.split("?", 1)[0].split("#", 1)[0]
        if path.startswith(self.uploads_prefix):
            return path
        if path.startswith(self.uploads_prefix.lstrip("/")):
            return "/" + path
        return f"{self.uploads_prefix}{path.rsplit('/', 1)[-1]}"

    async def read(self, reference: str) -> bytes:
        url = self.client.server_url(self._served_path(reference))
        try:
            response = await self.client.request("GET", url)
        except RemoteUnavailableError as e:
            raise MediaFetchError(reference, str(e)) from e
        return response.content

    async def exists(self, filename: str) -> Optional[str]:
        result = await self.client.request_json(
            "GET", "/upload/check", params={"filename": filename}
        )
        if isinstance(result, dict) and result.get("exists"):
            return result.get("url") or f"{self.uploads_prefix}{filename}"
        return None

    async def upload(self, media: MediaFile) -> str:
        files = {"file": (media.filename, media.data, media.content_type)}
        result = await self.client.request_json("POST", "/upload", files=files)
        url = result.get("url") if isinstance(result, dict) else None
        if not url:
            raise RemoteUnavailableError(f"Upload of {media.filename} returned no url")
        logger.debug(f"Uploaded {media.filename} -> {url}")
        return url
