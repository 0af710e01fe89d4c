"""Discovery and materialization of media referenced from note content."""

import asyncio
import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import httpx

from .._utils import logger
from ..base import BaseMediaStore
from ..config import MediaConfig
from .exceptions import MediaFetchError
from .models import MediaFile, Note
from .utils import guess_content_type, has_media_extension, safe_filename

# ![alt](ref "optional title") and ![alt](<ref with spaces>)
MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\(\s*(?:<([^>]+)>|([^)\s]+))(?:\s+[\"'][^\"']*[\"'])?\s*\)")
HTML_MEDIA = re.compile(
    r"<(?:img|video|audio|source)\b[^>]*?(?<![\w-])src\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE
)


class ReferenceKind(str, Enum):
    INLINE = "inline"
    REMOTE = "remote"
    LOCAL = "local"
    UNKNOWN = "unknown"


def _matched_reference(match: "re.Match") -> str:
    return next(group for group in match.groups() if group is not None).strip()


def find_references(content: str) -> List[str]:
    """All media references of ``content`` in order of appearance, first occurrence only."""
    matches = list(MARKDOWN_IMAGE.finditer(content)) + list(HTML_MEDIA.finditer(content))
    matches.sort(key=lambda m: m.start())
    seen = set()
    references = []
    for match in matches:
        reference = _matched_reference(match)
        if reference and reference not in seen:
            seen.add(reference)
            references.append(reference)
    return references


def classify_reference(reference: str, uploads_prefix: str = "/uploads/") -> ReferenceKind:
    lowered = reference.lower()
    if lowered.startswith("data:"):
        return ReferenceKind.INLINE
    if lowered.startswith(("http://", "https://")):
        return ReferenceKind.REMOTE
    if reference.startswith(uploads_prefix) or reference.startswith(uploads_prefix.lstrip("/")):
        return ReferenceKind.LOCAL
    path = reference.split("?", 1)[0].split("#", 1)[0]
    if "/" not in path and ":" not in path and has_media_extension(path):
        return ReferenceKind.LOCAL
    return ReferenceKind.UNKNOWN


def media_filename(reference: str) -> str:
    path = reference.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    return safe_filename(path.rsplit("/", 1)[-1])


def rewrite_references(content: str, mapping: Dict[str, str]) -> str:
    """Replace media references of ``content`` according to ``mapping``.

    Only references inside markdown image or HTML media syntax are touched;
    the same string elsewhere in the text is left alone.
    """
    if not mapping:
        return content

    def _replace(match: "re.Match") -> str:
        for index, group in enumerate(match.groups(), start=1):
            if group is None:
                continue
            new_reference = mapping.get(group.strip())
            if new_reference is None:
                return match.group(0)
            start, end = match.span(index)
            offset = match.start()
            text = match.group(0)
            return text[: start - offset] + new_reference + text[end - offset:]
        return match.group(0)

    content = MARKDOWN_IMAGE.sub(_replace, content)
    return HTML_MEDIA.sub(_replace, content)


class MediaExtractor:
    """Turns media references in notes into ``MediaFile`` objects.

    Local references are read through the media store, remote URLs over HTTP.
    Inline data URIs already live in the content and are left there. A
    reference that cannot be fetched is logged and skipped; it never fails the
    batch.
    """

    def __init__(
        self,
        media_store: Optional[BaseMediaStore] = None,
        config: Optional[MediaConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.media_store = media_store
        self.config = config or MediaConfig()
        self._http_client = http_client

    def references(self, notes: Iterable[Note]) -> List[Tuple[str, ReferenceKind]]:
        """Materializable references across ``notes``, deduplicated, first-seen order."""
        seen = set()
        result = []
        for note in notes:
            for reference in find_references(note.content):
                if reference in seen:
                    continue
                seen.add(reference)
                kind = classify_reference(reference, self.config.uploads_prefix)
                if kind == ReferenceKind.REMOTE and not self.config.fetch_remote_urls:
                    continue
                if kind in (ReferenceKind.LOCAL, ReferenceKind.REMOTE):
                    result.append((reference, kind))
                else:
                    logger.debug(f"Not materializing {kind.value} media reference: {reference[:80]}")
        return result

    async def extract(self, notes: Iterable[Note]) -> List[MediaFile]:
        references = self.references(notes)
        if not references:
            return []

        semaphore = asyncio.Semaphore(self.config.max_concurrent_fetches)

        async with self._client() as client:
            async def fetch_one(reference: str, kind: ReferenceKind) -> Optional[MediaFile]:
                async with semaphore:
                    try:
                        return await self._fetch(client, reference, kind)
                    except MediaFetchError as e:
                        logger.warning(f"Skipping media: {e}")
                        return None

            results = await asyncio.gather(*[fetch_one(ref, kind) for ref, kind in references])

        media = [m for m in results if m is not None]
        logger.info(f"Extracted {len(media)}/{len(references)} media file(s)")
        return media

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return _Borrowed(self._http_client)
        return httpx.AsyncClient(timeout=self.config.fetch_timeout, follow_redirects=True)

    async def _fetch(self, client: httpx.AsyncClient, reference: str, kind: ReferenceKind) -> MediaFile:
        filename = media_filename(reference)
        if kind == ReferenceKind.LOCAL:
            if self.media_store is None:
                raise MediaFetchError(reference, "no media store configured")
            try:
                data = await asyncio.wait_for(
                    self.media_store.read(reference), timeout=self.config.fetch_timeout
                )
            except asyncio.TimeoutError as e:
                raise MediaFetchError(reference, "timed out") from e
            content_type = guess_content_type(filename)
        else:
            try:
                response = await client.get(reference, timeout=self.config.fetch_timeout)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise MediaFetchError(reference, repr(e)) from e
            data = response.content
            header = response.headers.get("content-type", "")
            content_type = header.split(";", 1)[0].strip() or guess_content_type(filename)

        return MediaFile(
            filename=filename,
            source_reference=reference,
            data=data,
            content_type=content_type,
            size=len(data),
        )


class _Borrowed:
    """Async context manager that lends an injected client without closing it."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def __aenter__(self) -> httpx.AsyncClient:
        return self.client

    async def __aexit__(self, *exc_info) -> None:
        return None
