"""
SQLite storage for reconciled datasets and the push audit log.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .config import ensure_db_directory, get_db_path


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    db_path = get_db_path()
    ensure_db_directory(db_path)
    conn = sqlite3.connect(db_path, timeout=30)
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        # One reconciled dataset per user key
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sync_data (
                user_key TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_at TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        ''')

        # Audit trail of pushes
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sync_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_key TEXT NOT NULL,
                action TEXT NOT NULL,
                details TEXT,
                ts TEXT NOT NULL
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_sync_data_updated_at ON sync_data(updated_at DESC)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_sync_log_user_key_ts ON sync_log(user_key, ts DESC)')

        conn.commit()


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            required_tables = ['sync_data', 'sync_log']

            return all(table in table_names for table in required_tables)
    except Exception:
        return False
