"""
Dataset helpers: collection discovery, merge keys, effective timestamps,
tombstoning and the fresh-installation check.

A dataset is a plain JSON object. Every top-level list is a collection of
records; every other top-level field is an ordinary dataset field.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import DEFAULT_MERGE_KEY, KNOWN_COLLECTIONS

Dataset = Dict[str, Any]
Record = Dict[str, Any]


def default_dataset() -> Dataset:
    """One empty collection per known collection name."""
    return {name: [] for name in KNOWN_COLLECTIONS}


def merge_key_field(collection: str) -> str:
    """Field that identifies a record of ``collection`` across datasets."""
    return KNOWN_COLLECTIONS.get(collection, DEFAULT_MERGE_KEY)


MERGE_KEY_TYPES = (str, int, float)


def is_valid_key_value(value: Any) -> bool:
    """Merge keys must be scalars; lists and objects cannot identify a record."""
    return isinstance(value, MERGE_KEY_TYPES) and not isinstance(value, bool)


def merge_key(collection: str, record: Any) -> Optional[Any]:
    """Return the record's merge key, or None when it has no usable one."""
    if not isinstance(record, dict):
        return None
    value = record.get(merge_key_field(collection))
    if value == "" or not is_valid_key_value(value):
        return None
    return value


def iter_collections(dataset: Optional[Dataset]) -> Iterator[Tuple[str, List[Any]]]:
    """Yield (name, records) for every list-valued field of the dataset."""
    if not dataset:
        return
    for name, value in dataset.items():
        if isinstance(value, list):
            yield name, value


def collection_sizes(dataset: Optional[Dataset]) -> Dict[str, int]:
    return {name: len(records) for name, records in iter_collections(dataset)}


def is_fresh(dataset: Optional[Dataset]) -> bool:
    """True when no collection holds a single record (brand-new installation)."""
    return all(len(records) == 0 for _, records in iter_collections(dataset))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string or an epoch-milliseconds number into an aware
    UTC datetime. Returns None for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def effective_timestamp(record: Any) -> Optional[datetime]:
    """``updatedAt`` falling back to the business date ``fecha``."""
    if not isinstance(record, dict):
        return None
    raw = record.get("updatedAt") or record.get("fecha")
    return parse_timestamp(raw)


def is_tombstone(record: Any) -> bool:
    return isinstance(record, dict) and bool(record.get("deleted", False))


def _strip_attachments(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: ([] if k == "pdfs" and isinstance(v, list) else _strip_attachments(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_strip_attachments(item) for item in value]
    return value


def tombstone(record: Record, now: datetime = None) -> Record:
    """
    Soft-delete a record: flag it deleted, stamp ``updatedAt`` and drop every
    nested ``pdfs`` attachment list. The input record is left untouched.
    """
    now = now or datetime.now(timezone.utc)
    deleted = _strip_attachments(copy.deepcopy(record))
    deleted["deleted"] = True
    deleted["updatedAt"] = now.isoformat()
    return deleted
