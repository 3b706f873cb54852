"""
Local Store Adapters - where an installation keeps its own copy of a dataset.

The coordinator only needs ``read(user_key)`` and ``write(user_key, dataset)``;
both raise ``PersistenceError`` when the store is unavailable.
"""

import copy
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

from ..core.dataset import Dataset, default_dataset
from ..core.errors import PersistenceError


class LocalStore(ABC):
    """Read-all/write-all access to one installation's datasets."""

    @abstractmethod
    def read(self, user_key: str) -> Dataset:
        """Return the local dataset for ``user_key`` (default dataset if absent)."""

    @abstractmethod
    def write(self, user_key: str, dataset: Dataset) -> None:
        """Overwrite the local dataset for ``user_key``."""


class MemoryLocalStore(LocalStore):
    """Process-local store, handy for tests and embedding."""

    def __init__(self, initial: Dict[str, Dataset] = None):
        self._data: Dict[str, Dataset] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def read(self, user_key: str) -> Dataset:
        with self._lock:
            return copy.deepcopy(self._data.get(user_key, default_dataset()))

    def write(self, user_key: str, dataset: Dataset) -> None:
        with self._lock:
            self._data[user_key] = copy.deepcopy(dataset)


class SQLiteLocalStore(LocalStore):
    """Stores each dataset as one JSON document in an ``app_data`` table."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30)

    def _init_db(self):
        try:
            conn = self._connect()
            try:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS app_data (
                        id TEXT PRIMARY KEY,
                        content TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                ''')
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open local store {self.db_path}: {e}")

    def read(self, user_key: str) -> Dataset:
        try:
            conn = self._connect()
            try:
                row = conn.execute("SELECT content FROM app_data WHERE id = ?", (user_key,)).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Local read failed for '{user_key}': {e}")

        if not row:
            return default_dataset()

        try:
            data = json.loads(row[0])
        except ValueError as e:
            raise PersistenceError(f"Local dataset for '{user_key}' is corrupt: {e}")
        if not isinstance(data, dict):
            raise PersistenceError(f"Local dataset for '{user_key}' is not an object")
        return data

    def write(self, user_key: str, dataset: Dataset) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO app_data (id, content, updated_at) VALUES (?, ?, ?)",
                    (user_key, json.dumps(dataset), datetime.now(timezone.utc).isoformat())
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Local write failed for '{user_key}': {e}")
