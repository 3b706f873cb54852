"""
Retention Sweeper - the only component that physically deletes records.

Tombstoned records whose effective timestamp is older than the retention
window are removed from every stored dataset. Records without a usable
timestamp are kept. A dataset is written back only when something was removed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from . import dao
from .config import get_retention_days
from .dataset import Dataset, effective_timestamp, is_tombstone, iter_collections
from .errors import PersistenceError
from ..util.logging import logger


@dataclass
class SweepReport:
    """Outcome of one retention sweep over all stored datasets."""
    started_at: datetime
    retention_days: int
    completed_at: Optional[datetime] = None
    datasets_scanned: int = 0
    datasets_rewritten: int = 0
    records_removed: int = 0
    removed_by_user: Dict[str, Dict[str, int]] = None
    errors: List[str] = None

    def __post_init__(self):
        if self.removed_by_user is None:
            self.removed_by_user = {}
        if self.errors is None:
            self.errors = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": "retention_sweep",
            "started_at": self.started_at.isoformat(),
            "retention_days": self.retention_days,
            "datasets_scanned": self.datasets_scanned,
            "datasets_rewritten": self.datasets_rewritten,
            "records_removed": self.records_removed,
            "removed_by_user": self.removed_by_user,
            "errors": self.errors
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


def is_expired(record: Any, cutoff: datetime) -> bool:
    """True for a tombstone last touched before ``cutoff``."""
    if not is_tombstone(record):
        return False

    timestamp = effective_timestamp(record)
    if timestamp is None:
        return False  # No date: keep it

    return timestamp < cutoff


def sweep_dataset(dataset: Dataset, now: datetime = None, retention_days: int = None) -> Tuple[Dataset, Dict[str, int]]:
    """
    Drop expired tombstones from one dataset.

    Returns:
        (swept dataset, removed count per collection with at least one removal)
    """
    now = now or datetime.now(timezone.utc)
    if retention_days is None:
        retention_days = get_retention_days()
    cutoff = now - timedelta(days=retention_days)

    swept = dict(dataset)
    removed: Dict[str, int] = {}

    for name, records in iter_collections(dataset):
        kept = [record for record in records if not is_expired(record, cutoff)]
        if len(kept) != len(records):
            removed[name] = len(records) - len(kept)
            swept[name] = kept

    return swept, removed


def run_retention_sweep(now: datetime = None, retention_days: int = None) -> SweepReport:
    """Sweep every stored dataset, persisting only the ones that changed."""
    if retention_days is None:
        retention_days = get_retention_days()

    report = SweepReport(started_at=datetime.now(timezone.utc), retention_days=retention_days)
    logger.info("Retention sweep started")

    try:
        user_keys = dao.list_user_keys()
    except PersistenceError as e:
        report.errors.append(str(e))
        report.completed_at = datetime.now(timezone.utc)
        logger.error(f"Retention sweep aborted: {e}")
        return report

    for user_key in user_keys:
        try:
            with dao.user_lock(user_key):
                stored = dao.load_dataset(user_key)
                if stored is None:
                    continue

                report.datasets_scanned += 1
                swept, removed = sweep_dataset(stored.content, now=now, retention_days=retention_days)
                if not removed:
                    continue

                dao.replace_content(user_key, swept)

            report.datasets_rewritten += 1
            report.records_removed += sum(removed.values())
            report.removed_by_user[user_key] = removed
            logger.log_sweep(user_key, removed)

        except PersistenceError as e:
            report.errors.append(f"{user_key}: {e}")
            logger.error(f"Retention sweep failed for '{user_key}': {e}")

    report.completed_at = datetime.now(timezone.utc)

    if report.records_removed:
        logger.info(f"Retention sweep completed: {report.records_removed} records removed")
    else:
        logger.info("Retention sweep completed: nothing to remove")

    return report
