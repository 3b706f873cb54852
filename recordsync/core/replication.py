"""
Replication operations behind the HTTP endpoints.

``pull`` returns a user's reconciled dataset, creating the empty default on
first access. ``push`` merges an incoming dataset into the stored one,
persists the result, bumps the version counter and records an audit entry.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import dao
from .dataset import Dataset, collection_sizes, default_dataset, is_valid_key_value, merge_key_field
from .errors import ValidationError
from .merge import merge_datasets
from ..util.logging import audit_event, logger


@dataclass
class PushResult:
    merged: Dataset
    version: int
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "version": self.version,
            "updated_at": self.updated_at,
            "merged": self.merged
        }


def validate_user_key(user_key: Optional[str]) -> str:
    """Return the stripped user key or raise ValidationError."""
    if not isinstance(user_key, str) or not user_key.strip():
        raise ValidationError("userKey is required")
    return user_key.strip()


def validate_dataset(data: Any) -> Dataset:
    """Check that a pushed body is a non-empty object whose collections are lists of objects."""
    if not isinstance(data, dict):
        raise ValidationError("Dataset must be a JSON object")

    if not data:
        raise ValidationError("data is required")

    for name, value in data.items():
        if name in default_dataset() and not isinstance(value, list):
            raise ValidationError(f"Collection '{name}' must be a list")
        if not isinstance(value, list):
            continue
        if any(not isinstance(record, dict) for record in value):
            raise ValidationError(f"Collection '{name}' must only contain objects")

        key_field = merge_key_field(name)
        for record in value:
            key = record.get(key_field)
            if key is not None and not is_valid_key_value(key):
                raise ValidationError(f"Collection '{name}' has a record whose '{key_field}' is not a string or number")

    return data


def pull(user_key: str) -> Dataset:
    """Return the stored dataset for ``user_key``."""
    user_key = validate_user_key(user_key)
    stored = dao.get_or_create_dataset(user_key)
    logger.log_operation("sync.pull", "success", {
        "user_key": user_key,
        "version": stored.version,
        "collections": collection_sizes(stored.content)
    })
    return stored.content


def push(user_key: str, incoming: Any) -> PushResult:
    """Merge ``incoming`` into the stored dataset and persist the result."""
    user_key = validate_user_key(user_key)
    incoming = validate_dataset(incoming)

    with dao.user_lock(user_key):
        stored = dao.load_dataset(user_key)
        existing = stored.content if stored else default_dataset()

        merged, stats = merge_datasets(existing, incoming)
        version, updated_at = dao.save_dataset(user_key, merged)

        summary = {
            "version": version,
            "before": collection_sizes(existing),
            "incoming": collection_sizes(incoming),
            "after": collection_sizes(merged)
        }
        dao.append_log(user_key, "PUSH", summary)

    logger.log_merge(user_key, stats.to_dict())
    audit_event("sync.push", {"user_key": user_key}, payload=summary)

    return PushResult(merged=merged, version=version, updated_at=updated_at)
