"""Tests for backup utility functions."""

import hashlib
import json
import re
from datetime import datetime, timedelta, timezone

import pytest

from memeos_backup._utils import (
    compute_short_hash,
    format_timestamp,
    load_json,
    parse_timestamp,
    write_json,
)
from memeos_backup.backup.utils import (
    archive_timestamp,
    canonical_json,
    compute_checksum,
    compute_fingerprint,
    generate_backup_id,
    guess_content_type,
    has_media_extension,
    is_legacy_digest,
    is_local_backup_id,
    legacy_client_hash,
    read_archive,
    safe_filename,
    unique_preserving_order,
    verify_checksum,
    write_archive,
)


def test_fingerprint_matches_stored_content_hash_format():
    """Fingerprint is sha256 over compact JSON with content, tags, created_at in order."""
    expected = hashlib.sha256(
        '{"content":"hello","tags":["daily"],"created_at":"2024-03-01T09:00:00.000Z"}'.encode("utf-8")
    ).hexdigest()

    assert compute_fingerprint("hello", ["daily"], "2024-03-01T09:00:00.000Z") == expected


def test_fingerprint_omits_missing_created_at():
    expected = hashlib.sha256('{"content":"hello","tags":[]}'.encode("utf-8")).hexdigest()
    assert compute_fingerprint("hello", [], None) == expected


def test_fingerprint_keeps_non_ascii():
    expected = hashlib.sha256('{"content":"你好","tags":["日记"]}'.encode("utf-8")).hexdigest()
    assert compute_fingerprint("你好", ["日记"], None) == expected


@pytest.mark.parametrize("text,expected", [
    ("", "0"),
    ("a", "61"),
    ("ab", "c21"),
    ("Hello World", "3369657c"),
    ("\U0001F600", "1b0d63"),
])
def test_legacy_client_hash_vectors(text, expected):
    assert legacy_client_hash(text) == expected


def test_legacy_client_hash_serializes_like_the_browser():
    notes = [{"id": 1, "content": "héllo", "tags": [], "mood": None}]
    assert legacy_client_hash(notes) == legacy_client_hash(
        '[{"id":1,"content":"héllo","tags":[],"mood":null}]'
    )


def test_is_legacy_digest():
    assert is_legacy_digest("3369657c")
    assert is_legacy_digest("0")
    assert not is_legacy_digest("sha256:abc")
    assert not is_legacy_digest("123456789")
    assert not is_legacy_digest(None)
    assert not is_legacy_digest(12)


def test_fingerprint_is_sensitive_to_each_field():
    base = compute_fingerprint("hello", ["a"], "2024-01-01")
    assert compute_fingerprint("hello world", ["a"], "2024-01-01") != base
    assert compute_fingerprint("hello", ["b"], "2024-01-01") != base
    assert compute_fingerprint("hello", ["a"], "2024-01-02") != base
    assert compute_fingerprint("hello", ["a"], "2024-01-01") == base


def test_canonical_json_is_order_independent():
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
    assert canonical_json({"b": 1, "a": "é"}) == '{"a":"é","b":1}'


def test_compute_and_verify_checksum():
    checksum = compute_checksum(b"Test content for checksum")
    assert checksum.startswith("sha256:")
    assert len(checksum) == len("sha256:") + 64

    assert verify_checksum(b"Test content for checksum", checksum)
    assert not verify_checksum(b"Modified content", checksum)


def test_verify_checksum_rejects_missing_or_foreign_scheme():
    digest = hashlib.sha256(b"data").hexdigest()
    assert not verify_checksum(b"data", None)
    assert not verify_checksum(b"data", "")
    assert not verify_checksum(b"data", digest)
    assert not verify_checksum(b"data", f"md5:{digest}")


def test_generate_backup_id():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    backup_id = generate_backup_id(now)

    assert re.fullmatch(r"local_1704067200000_[0-9a-f]{6}", backup_id)
    assert is_local_backup_id(backup_id)
    assert generate_backup_id(now) != generate_backup_id(now)


def test_is_local_backup_id():
    assert is_local_backup_id("local_1704067200000_abc123")
    assert is_local_backup_id("1704067200000")
    assert not is_local_backup_id("backup_2024-01-01T00-00-00-000Z_k2j3h4")


def test_archive_timestamp_uses_utc():
    shanghai = timezone(timedelta(hours=8))
    assert archive_timestamp(datetime(2024, 3, 1, 17, 5, 7, tzinfo=shanghai)) == "2024-03-01-09-05-07"


@pytest.mark.parametrize("filename,expected", [
    ("photo.JPG", "image/jpeg"),
    ("clip.mp4", "video/mp4"),
    ("song.mp3", "audio/mpeg"),
    ("paper.pdf", "application/pdf"),
    ("archive.xyz", "application/octet-stream"),
    ("no_extension", "application/octet-stream"),
])
def test_guess_content_type(filename, expected):
    assert guess_content_type(filename) == expected


def test_has_media_extension():
    assert has_media_extension("cat.png")
    assert not has_media_extension("notes.md")
    assert not has_media_extension("png")


def test_safe_filename():
    assert safe_filename("cat.png") == "cat.png"
    assert safe_filename("my photo (1).png") == "my_photo_1_.png"
    assert safe_filename("...") == "media"


def test_unique_preserving_order():
    assert unique_preserving_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


@pytest.mark.asyncio
async def test_write_and_read_archive(tmp_path):
    target = tmp_path / "nested" / "export.zip"

    size = await write_archive(b"PK\x03\x04payload", target)

    assert size == len(b"PK\x03\x04payload")
    assert await read_archive(target) == b"PK\x03\x04payload"


@pytest.mark.parametrize("value,expected", [
    ("2024-03-01T09:00:00Z", datetime(2024, 3, 1, 9, tzinfo=timezone.utc)),
    ("2024-03-01T09:00:00.000Z", datetime(2024, 3, 1, 9, tzinfo=timezone.utc)),
    ("2024-03-01T17:00:00+08:00", datetime(2024, 3, 1, 9, tzinfo=timezone.utc)),
    ("2024-03-01 09:00:00", datetime(2024, 3, 1, 9, tzinfo=timezone.utc)),
    (1704067200000, datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ("1704067200000", datetime(2024, 1, 1, tzinfo=timezone.utc)),
])
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


def test_parse_timestamp_empty_and_invalid():
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None
    with pytest.raises(ValueError):
        parse_timestamp("not a date")


def test_format_timestamp():
    assert format_timestamp(datetime(2024, 3, 1, 9, tzinfo=timezone.utc)) == "2024-03-01T09:00:00Z"


def test_compute_short_hash():
    assert len(compute_short_hash("abc")) == 8
    assert compute_short_hash("abc") == compute_short_hash("abc")
    assert compute_short_hash("abc") != compute_short_hash("abd")


def test_write_json_replaces_atomically(tmp_path):
    path = tmp_path / "store.json"
    write_json({"k": "värde"}, str(path))

    assert load_json(str(path)) == {"k": "värde"}
    assert not (tmp_path / "store.json.tmp").exists()
    assert json.loads(path.read_text(encoding="utf-8")) == {"k": "värde"}
    assert load_json(str(tmp_path / "missing.json")) is None
