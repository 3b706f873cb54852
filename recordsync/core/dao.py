"""
Data access for stored datasets, version counters and the sync audit log.

Every SQLite failure is raised as ``PersistenceError`` so callers can surface
it as a failed pull/push instead of a generic server fault.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .dataset import Dataset, collection_sizes, default_dataset
from .db import get_db
from .errors import PersistenceError
from ..util.logging import logger


@dataclass
class StoredDataset:
    """A user's reconciled dataset as persisted on the server."""
    user_key: str
    content: Dataset
    version: int
    updated_at: str
    created_at: str


# user_key -> [lock, holders]; an entry lives only while someone holds or waits on it
_locks: Dict[str, List[Any]] = {}
_locks_guard = threading.Lock()


@contextmanager
def user_lock(user_key: str) -> Iterator[None]:
    """Serialize read-modify-write sequences for one user key in this process."""
    with _locks_guard:
        entry = _locks.setdefault(user_key, [threading.Lock(), 0])
        entry[1] += 1

    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _locks[user_key]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode(user_key: str, raw: str) -> Dataset:
    try:
        content = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Stored dataset for '{user_key}' is corrupt: {e}")
    if not isinstance(content, dict):
        raise PersistenceError(f"Stored dataset for '{user_key}' is not an object")
    return content


def load_dataset(user_key: str) -> Optional[StoredDataset]:
    """Return the stored dataset for a user, or None if there is none."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT content, version, updated_at, created_at FROM sync_data WHERE user_key = ?",
                (user_key,)
            )
            row = cursor.fetchone()
    except sqlite3.Error as e:
        logger.error(f"Failed to load dataset for '{user_key}': {e}")
        raise PersistenceError(f"Failed to load dataset: {e}")

    if not row:
        return None

    content, version, updated_at, created_at = row
    return StoredDataset(
        user_key=user_key,
        content=_decode(user_key, content),
        version=version,
        updated_at=updated_at,
        created_at=created_at
    )


def get_or_create_dataset(user_key: str) -> StoredDataset:
    """Load a user's dataset, persisting the empty default on first access."""
    stored = load_dataset(user_key)
    if stored is not None:
        return stored

    now = _now()
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO sync_data (user_key, content, version, updated_at, created_at) VALUES (?, ?, 1, ?, ?)",
                (user_key, json.dumps(default_dataset()), now, now)
            )
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to create default dataset for '{user_key}': {e}")
        raise PersistenceError(f"Failed to create dataset: {e}")

    logger.info(f"Created default dataset for '{user_key}'")
    return load_dataset(user_key)


def save_dataset(user_key: str, content: Dataset) -> Tuple[int, str]:
    """
    Upsert a user's dataset and bump its version counter.

    Returns:
        (version, updated_at) after the write
    """
    now = _now()
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO sync_data (user_key, content, version, updated_at, created_at)
                VALUES (?, ?, 1, ?, ?)
                ON CONFLICT(user_key) DO UPDATE SET
                    content = excluded.content,
                    version = sync_data.version + 1,
                    updated_at = excluded.updated_at
            ''', (user_key, json.dumps(content), now, now))
            cursor.execute("SELECT version, updated_at FROM sync_data WHERE user_key = ?", (user_key,))
            version, updated_at = cursor.fetchone()
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to save dataset for '{user_key}': {e}")
        raise PersistenceError(f"Failed to save dataset: {e}")

    return version, updated_at


def replace_content(user_key: str, content: Dataset) -> None:
    """Rewrite a stored dataset in place without bumping its version."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE sync_data SET content = ?, updated_at = ? WHERE user_key = ?",
                (json.dumps(content), _now(), user_key)
            )
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to rewrite dataset for '{user_key}': {e}")
        raise PersistenceError(f"Failed to rewrite dataset: {e}")


def list_user_keys() -> List[str]:
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT user_key FROM sync_data ORDER BY user_key")
            return [row[0] for row in cursor.fetchall()]
    except sqlite3.Error as e:
        raise PersistenceError(f"Failed to list datasets: {e}")


def seed_user_keys(user_keys: List[str]) -> List[str]:
    """Create default datasets for the given keys; returns the keys created."""
    created = []
    for user_key in user_keys:
        if load_dataset(user_key) is None:
            get_or_create_dataset(user_key)
            created.append(user_key)
    return created


def append_log(user_key: str, action: str, details: Dict[str, Any] = None) -> None:
    """Append an entry to the sync audit log."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO sync_log (user_key, action, details, ts) VALUES (?, ?, ?, ?)",
                (user_key, action, json.dumps(details or {}), _now())
            )
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to write audit entry for '{user_key}': {e}")
        raise PersistenceError(f"Failed to write audit log: {e}")


def list_log(user_key: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Most recent audit entries for a user, newest first."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, action, details, ts FROM sync_log WHERE user_key = ? ORDER BY id DESC LIMIT ?",
                (user_key, limit)
            )
            rows = cursor.fetchall()
    except sqlite3.Error as e:
        raise PersistenceError(f"Failed to read audit log: {e}")

    return [
        {"id": row_id, "action": action, "details": json.loads(details or "{}"), "timestamp": ts}
        for row_id, action, details, ts in rows
    ]


def get_stats() -> List[Dict[str, Any]]:
    """Per-user version, timestamps and collection sizes, most recent first."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT user_key, content, version, updated_at FROM sync_data ORDER BY updated_at DESC"
            )
            rows = cursor.fetchall()
    except sqlite3.Error as e:
        raise PersistenceError(f"Failed to read stats: {e}")

    stats = []
    for user_key, content, version, updated_at in rows:
        try:
            sizes = collection_sizes(_decode(user_key, content))
        except PersistenceError:
            sizes = {}
        stats.append({
            "user_key": user_key,
            "version": version,
            "updated_at": updated_at,
            "collections": sizes
        })
    return stats
