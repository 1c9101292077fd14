"""Load ContentItems from JSON / JSONL exports of chat or file sources."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from greenlight.ingest.grouping import ContentItem, SourceType

# Provider names seen in exports, mapped onto the two source kinds.
_SOURCE_TYPE_ALIASES: dict[str, SourceType] = {
    "chat": SourceType.CHAT,
    "teams": SourceType.CHAT,
    "slack": SourceType.CHAT,
    "file": SourceType.FILE,
    "google_drive": SourceType.FILE,
    "drive": SourceType.FILE,
    "sharepoint": SourceType.FILE,
}


class SourceFormatError(ValueError):
    """Raised when an export file cannot be turned into ContentItems."""


def load_items(path: Path | str) -> list[ContentItem]:
    """Read ContentItems from *path*.

    ``.jsonl`` files hold one item object per line. Any other file must hold a
    JSON array of items or an object with an ``items`` array.

    Raises:
        FileNotFoundError: If *path* does not exist.
        SourceFormatError: If the file or any item is malformed.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")

    if path.suffix.lower() == ".jsonl":
        records = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise SourceFormatError(f"{path.name}:{lineno}: invalid JSON ({exc.msg})") from exc
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SourceFormatError(f"{path.name}: invalid JSON ({exc.msg})") from exc
        records = data.get("items") if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise SourceFormatError(f"{path.name}: expected a JSON array or an object with 'items'")

    return [item_from_dict(record, f"{path.name}[{idx}]") for idx, record in enumerate(records)]


def item_from_dict(record: Any, where: str = "item") -> ContentItem:
    if not isinstance(record, dict):
        raise SourceFormatError(f"{where}: expected an object")
    try:
        source_id = str(record["source_id"])
        content = str(record["content"])
        raw_ts = record["timestamp"]
    except KeyError as exc:
        raise SourceFormatError(f"{where}: missing required field {exc.args[0]!r}") from None

    raw_type = str(record.get("source_type", "chat")).lower()
    source_type = _SOURCE_TYPE_ALIASES.get(raw_type)
    if source_type is None:
        raise SourceFormatError(f"{where}: unknown source_type '{raw_type}'")

    timestamp = parse_timestamp(raw_ts, where)
    item_id = record.get("id") or _derive_id(source_id, timestamp, content)
    return ContentItem(
        id=str(item_id),
        source_type=source_type,
        source_id=source_id,
        content=content,
        timestamp=timestamp,
        author=record.get("author"),
        url=record.get("url"),
        title=record.get("title"),
    )


def parse_timestamp(value: Any, where: str = "item") -> datetime:
    """ISO-8601 string or epoch seconds, normalised to an aware UTC datetime."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise SourceFormatError(f"{where}: invalid timestamp {value!r}") from None
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _derive_id(source_id: str, timestamp: datetime, content: str) -> str:
    digest = hashlib.sha1(f"{source_id}|{timestamp.isoformat()}|{content}".encode()).hexdigest()
    return digest[:16]
