"""
Merge Engine - reconciles a stored dataset with an incoming one.

Policy, per collection:
  * records are matched by merge key (see ``dataset.merge_key_field``);
  * an unknown key is added;
  * a known key is replaced when the incoming effective timestamp is greater
    than or equal to the stored one, or when either timestamp is missing or
    unparseable (the incoming copy is assumed newer);
  * records without a merge key cannot be matched and are dropped.

Replacement is wholesale; no field-level merge is attempted. Non-collection
fields are overwritten by the incoming value and collections that only exist
on the stored side are kept as they are.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .dataset import Dataset, effective_timestamp, merge_key, merge_key_field
from ..util.logging import logger


@dataclass
class CollectionStats:
    """Counts for one merged collection."""
    existing: int = 0
    incoming: int = 0
    added: int = 0
    updated: int = 0
    kept: int = 0
    skipped: int = 0
    result: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "existing": self.existing,
            "incoming": self.incoming,
            "added": self.added,
            "updated": self.updated,
            "kept": self.kept,
            "skipped": self.skipped,
            "result": self.result,
        }


@dataclass
class MergeStats:
    collections: Dict[str, CollectionStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {name: stats.to_dict() for name, stats in self.collections.items()}


def incoming_wins(incoming_record: Dict[str, Any], existing_record: Dict[str, Any]) -> bool:
    """Last-write-wins comparison with 'assume newer' for missing timestamps."""
    incoming_ts = effective_timestamp(incoming_record)
    existing_ts = effective_timestamp(existing_record)

    if incoming_ts is None or existing_ts is None:
        return True

    return incoming_ts >= existing_ts


def merge_collection(name: str, existing: List[Any], incoming: List[Any]) -> Tuple[List[Any], CollectionStats]:
    """Merge one collection by key. Neither input list is modified."""
    stats = CollectionStats(existing=len(existing), incoming=len(incoming))
    key_field = merge_key_field(name)

    by_key: Dict[Any, Any] = {}
    for record in existing:
        key = merge_key(name, record)
        if key is None:
            stats.skipped += 1
            continue
        by_key[key] = record

    for record in incoming:
        key = merge_key(name, record)
        if key is None:
            stats.skipped += 1
            logger.warning(f"Merge: record without '{key_field}' skipped in {name}")
            continue

        current = by_key.get(key)
        if current is None:
            by_key[key] = record
            stats.added += 1
        elif incoming_wins(record, current):
            by_key[key] = record
            stats.updated += 1
        else:
            stats.kept += 1

    merged = list(by_key.values())
    stats.result = len(merged)
    return merged, stats


def merge_datasets(existing: Optional[Dataset], incoming: Optional[Dataset]) -> Tuple[Dataset, MergeStats]:
    """Merge ``incoming`` into ``existing`` and return the result with counts."""
    existing = existing or {}
    incoming = incoming or {}

    merged: Dataset = dict(existing)
    stats = MergeStats()

    for name, value in incoming.items():
        if isinstance(value, list):
            current = existing.get(name)
            if not isinstance(current, list):
                current = []
            merged[name], stats.collections[name] = merge_collection(name, current, value)
        else:
            merged[name] = value

    return merged, stats


def merge(existing: Optional[Dataset], incoming: Optional[Dataset]) -> Dataset:
    """Return the reconciled dataset for ``existing`` and ``incoming``."""
    merged, _ = merge_datasets(existing, incoming)
    return merged
