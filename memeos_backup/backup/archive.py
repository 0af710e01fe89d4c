"""Portable ZIP export format for backups."""

import io
import json
import zipfile
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .._utils import compute_short_hash, logger, utc_now
from ..config import ArchiveConfig
from .exceptions import InvalidArchiveError
from .media import find_references
from .models import Backup, MediaFile
from .utils import archive_timestamp, compute_checksum

FILE_LIST_NAME = "file_list.json"

README_TEMPLATE = """memeos backup export
====================

Created: {created}
Backups: {backups}
Notes: {notes}
Media files: {media}

{document} holds the backups (notes, fingerprints and integrity digests).
{media_dir}/ holds the media files referenced by the notes; {media_dir}/{file_list}
maps each file to the reference it was taken from.

Import this archive from the backup manager to restore it. Notes that already
exist are skipped, nothing is overwritten.
"""


class ArchiveCodec:
    """Encode backups into a ZIP export and decode them back.

    Layout::

        <prefix>_<ts>.json              backup documents, media metadata only
        media_files_<ts>/<name>         media bytes
        media_files_<ts>/file_list.json {name: {originalUrl, contentType, size, filePath}}
        README.txt
    """

    def __init__(self, config: Optional[ArchiveConfig] = None):
        self.config = config or ArchiveConfig()

    def archive_name(self, now: datetime) -> str:
        return f"{self.config.document_prefix}_{archive_timestamp(now)}.zip"

    def encode(
        self,
        backups: List[Backup],
        compression_enabled: bool = True,
        now: Optional[datetime] = None,
    ) -> bytes:
        """Serialize ``backups`` into ZIP bytes.

        Args:
            backups: Backups to export, in order
            compression_enabled: Deflate entries when True, store them otherwise
            now: Timestamp used in entry names, defaults to the current time

        Returns:
            The archive as bytes
        """
        now = now or utc_now()
        stamp = archive_timestamp(now)
        media_dir = f"{self.config.media_dir_prefix}_{stamp}"
        document_name = f"{self.config.document_prefix}_{stamp}.json"
        compression = zipfile.ZIP_DEFLATED if compression_enabled else zipfile.ZIP_STORED

        names = self._assign_names(backups)
        file_list: Dict[str, Dict[str, Any]] = {}
        documents = []
        for backup in backups:
            payload = backup.to_payload(include_media_content=False)
            for entry, media in zip(payload["mediaFiles"], backup.media):
                name = names[self._media_key(media)]
                entry["filePath"] = f"{media_dir}/{name}"
                file_list[name] = {
                    "originalUrl": media.source_reference,
                    "contentType": media.content_type,
                    "size": media.size,
                    "filePath": entry["filePath"],
                }
            documents.append(payload)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
            archive.writestr(
                document_name, json.dumps(documents, indent=2, ensure_ascii=False)
            )
            written = set()
            for backup in backups:
                for media in backup.media:
                    name = names[self._media_key(media)]
                    if name not in written:
                        archive.writestr(f"{media_dir}/{name}", media.data)
                        written.add(name)
            if file_list:
                archive.writestr(
                    f"{media_dir}/{FILE_LIST_NAME}",
                    json.dumps(file_list, indent=2, ensure_ascii=False),
                )
            archive.writestr(
                "README.txt",
                README_TEMPLATE.format(
                    created=now.isoformat(),
                    backups=len(backups),
                    notes=sum(len(b.notes) for b in backups),
                    media=len(written),
                    document=document_name,
                    media_dir=media_dir,
                    file_list=FILE_LIST_NAME,
                ),
            )

        data = buffer.getvalue()
        logger.info(
            f"Encoded {len(backups)} backup(s) with {len(written)} media file(s) "
            f"into {len(data):,} bytes"
        )
        return data

    def decode(self, data: bytes) -> List[Backup]:
        """Read backups back from ZIP bytes.

        Raises:
            InvalidArchiveError: If the bytes are not a readable backup export
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise InvalidArchiveError(f"Not a ZIP archive: {e}") from e

        with archive:
            names = archive.namelist()
            documents = [
                n for n in names
                if n.lower().endswith(".json") and n.rsplit("/", 1)[-1] != FILE_LIST_NAME
            ]
            if not documents:
                raise InvalidArchiveError("Archive contains no backup document")
            # Prefer a top-level document over anything nested
            documents.sort(key=lambda n: n.count("/"))

            try:
                document = json.loads(archive.read(documents[0]).decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise InvalidArchiveError(f"Unreadable backup document {documents[0]}: {e}") from e

            payloads = self._payload_list(document)
            path_by_reference = self._read_file_lists(archive, names)

            backups = []
            for payload in payloads:
                payload = self._attach_media(archive, payload, path_by_reference)
                try:
                    backups.append(Backup.from_payload(payload))
                except (ValueError, ValidationError) as e:
                    raise InvalidArchiveError(f"Malformed backup in archive: {e}") from e

        logger.info(f"Decoded {len(backups)} backup(s) from archive")
        return backups

    # Private helper methods

    @staticmethod
    def _media_key(media: MediaFile) -> Tuple[str, str]:
        return media.source_reference, compute_checksum(media.data)

    def _assign_names(self, backups: List[Backup]) -> Dict[Tuple[str, str], str]:
        """Stable, collision-free archive names per distinct media file."""
        names: Dict[Tuple[str, str], str] = {}
        taken = {FILE_LIST_NAME}
        for backup in backups:
            for media in backup.media:
                key = self._media_key(media)
                if key in names:
                    continue
                name = media.filename
                if name in taken:
                    stem, dot, ext = name.rpartition(".")
                    suffix = compute_short_hash("|".join(key))
                    name = f"{stem}_{suffix}.{ext}" if dot else f"{name}_{suffix}"
                names[key] = name
                taken.add(name)
        return names

    @staticmethod
    def _payload_list(document: Any) -> List[Dict[str, Any]]:
        if isinstance(document, list):
            payloads = document
        elif isinstance(document, dict) and isinstance(document.get("backups"), list):
            payloads = document["backups"]
        elif isinstance(document, dict):
            payloads = [document]
        else:
            raise InvalidArchiveError("Backup document must be an object or a list")
        if not all(isinstance(p, dict) for p in payloads):
            raise InvalidArchiveError("Backup document entries must be objects")
        return payloads

    @staticmethod
    def _read_file_lists(archive: zipfile.ZipFile, names: List[str]) -> Dict[str, str]:
        path_by_reference: Dict[str, str] = {}
        for name in names:
            if name.rsplit("/", 1)[-1] != FILE_LIST_NAME:
                continue
            try:
                file_list = json.loads(archive.read(name).decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable {name}: {e}")
                continue
            directory = name.rsplit("/", 1)[0] if "/" in name else ""
            for filename, info in file_list.items():
                if not isinstance(info, dict) or not info.get("originalUrl"):
                    continue
                path = info.get("filePath") or (f"{directory}/{filename}" if directory else filename)
                path_by_reference.setdefault(info["originalUrl"], path)
        return path_by_reference

    def _attach_media(
        self,
        archive: zipfile.ZipFile,
        payload: Dict[str, Any],
        path_by_reference: Dict[str, str],
    ) -> Dict[str, Any]:
        payload = dict(payload)
        data = payload.get("data") if isinstance(payload.get("data"), dict) else None
        holder = data if data is not None and "notes" in data else payload
        entries = holder.get("mediaFiles") or holder.get("media_files") or []
        names = set(archive.namelist())

        if not entries and path_by_reference:
            # Older exports listed media only in file_list.json
            referenced = set()
            for note in holder.get("notes") or []:
                if isinstance(note, dict):
                    referenced.update(find_references(note.get("content") or ""))
            entries = [
                {"filename": path.rsplit("/", 1)[-1], "url": reference, "filePath": path}
                for reference, path in path_by_reference.items()
                if reference in referenced
            ]

        resolved = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            entry = dict(entry)
            if not entry.get("content"):
                reference = entry.get("url") or entry.get("originalUrl")
                path = entry.get("filePath") or path_by_reference.get(reference)
                if not path or path not in names:
                    logger.warning(f"Media {reference} listed but missing from archive, skipping")
                    continue
                entry["content"] = archive.read(path)
            entry.pop("filePath", None)
            resolved.append(entry)

        if holder is payload:
            payload["mediaFiles"] = resolved
            payload.pop("media_files", None)
        else:
            payload["data"] = {**holder, "mediaFiles": resolved}
            payload["data"].pop("media_files", None)
        return payload
