import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional, Union

import xxhash

logger = logging.getLogger("memeos-backup")


def load_json(file_name: str) -> Optional[Any]:
    if not os.path.exists(file_name):
        return None
    with open(file_name, encoding="utf-8") as f:
        return json.load(f)


def write_json(json_obj: Any, file_name: str) -> None:
    # Write to a sibling file first so a crash never leaves a truncated store
    tmp_name = f"{file_name}.tmp"
    with open(tmp_name, "w", encoding="utf-8") as f:
        json.dump(json_obj, f, indent=2, ensure_ascii=False, default=str)
    os.replace(tmp_name, file_name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """Parse the timestamp shapes seen in stored payloads into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with ``Z`` or an offset, or naive and
    read as UTC) and epoch milliseconds.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        # SQLite CURRENT_TIMESTAMP style: "2024-01-01 10:00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 in UTC with a ``Z`` suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def compute_short_hash(content: str) -> str:
    return xxhash.xxh64(content.encode("utf-8")).hexdigest()[:8]
