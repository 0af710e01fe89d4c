"""Utility functions for backup/restore operations."""

import hashlib
import json
import re
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .._utils import logger

LOCAL_ID_PREFIX = "local_"
DIGEST_SCHEME = "sha256:"

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_LEGACY_DIGEST = re.compile(r"[0-9a-f]{1,8}")


def canonical_json(data: Any) -> str:
    """Compact JSON with sorted keys and non-ASCII kept as-is."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_fingerprint(content: str, tags: Iterable[str], created_at: Optional[str]) -> str:
    """Compute the content fingerprint of a note.

    Hashes the JSON document ``{"content", "tags", "created_at"}`` with keys in
    that order and null values omitted, so fingerprints match the
    ``content_hash`` values stored by earlier releases.

    Returns:
        Lowercase hex SHA-256 digest
    """
    document = {"content": content, "tags": list(tags), "created_at": created_at}
    document = {k: v for k, v in document.items() if v is not None}
    encoded = json.dumps(document, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def compute_checksum(data: bytes) -> str:
    """Compute SHA-256 checksum of a byte string.

    Args:
        data: Bytes to hash

    Returns:
        SHA-256 checksum as hex string with 'sha256:' prefix
    """
    return f"{DIGEST_SCHEME}{hashlib.sha256(data).hexdigest()}"


def verify_checksum(data: bytes, expected_checksum: Optional[str]) -> bool:
    """Verify a checksum produced by :func:`compute_checksum`.

    Missing checksums and checksums using any other scheme never verify.
    """
    if not expected_checksum or not expected_checksum.startswith(DIGEST_SCHEME):
        return False
    return compute_checksum(data) == expected_checksum


def compute_document_digest(document: Any) -> str:
    """Checksum of the canonical JSON form of ``document``."""
    return compute_checksum(canonical_json(document).encode("utf-8"))


def is_legacy_digest(digest: Optional[str]) -> bool:
    """True for the short hex hashes written by the first web client."""
    return isinstance(digest, str) and _LEGACY_DIGEST.fullmatch(digest) is not None


def legacy_client_hash(data: Any) -> str:
    """Recompute the web client's ``generateHash`` over ``data``.

    The client hashed ``JSON.stringify(data)`` (insertion order, no
    whitespace) with the 31-multiplier string hash over UTF-16 code units,
    truncated to a signed 32-bit integer and written as the hex of its
    absolute value.
    """
    text = data if isinstance(data, str) else json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    encoded = text.encode("utf-16-le", "surrogatepass")
    value = 0
    for i in range(0, len(encoded), 2):
        value = (value * 31 + int.from_bytes(encoded[i:i + 2], "little")) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x")


def generate_backup_id(now: Optional[datetime] = None) -> str:
    """Generate an id for a backup persisted in the local cache.

    Returns:
        Backup ID in format: local_<epoch ms>_<6 hex chars>
    """
    now = now or datetime.now(timezone.utc)
    return f"{LOCAL_ID_PREFIX}{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


def is_local_backup_id(backup_id: str) -> bool:
    """True for ids minted offline, including the bare epoch ids of old clients."""
    return backup_id.startswith(LOCAL_ID_PREFIX) or backup_id.isdigit()


def archive_timestamp(dt: datetime) -> str:
    """Format a timestamp for archive entry names: YYYY-MM-DD-HH-mm-ss."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d-%H-%M-%S")


def guess_content_type(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def has_media_extension(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[-1].lower() in CONTENT_TYPES


def safe_filename(name: str) -> str:
    """Reduce an arbitrary reference tail to a name usable inside an archive."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return cleaned or "media"


def unique_preserving_order(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


async def write_archive(archive: bytes, output_path: Path) -> int:
    """Write an encoded archive to disk.

    Args:
        archive: Encoded archive bytes
        output_path: Output .zip file path

    Returns:
        Size of written archive in bytes
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(archive)

    archive_size = output_path.stat().st_size
    logger.info(f"Archive written: {output_path} ({archive_size:,} bytes)")
    return archive_size


async def read_archive(archive_path: Path) -> bytes:
    """Read an archive file from disk.

    Args:
        archive_path: Path to a .zip export
    """
    with open(archive_path, "rb") as f:
        data = f.read()

    logger.debug(f"Archive loaded: {archive_path} ({len(data):,} bytes)")
    return data
