"""
Tests for the retention sweeper that purges expired tombstones.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from recordsync.core import dao
from recordsync.core.errors import PersistenceError
from recordsync.core.retention import SweepReport, is_expired, run_retention_sweep, sweep_dataset

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _days_ago(days):
    return (NOW - timedelta(days=days)).isoformat()


class TestIsExpired:
    """Test the per-record expiry rule."""

    cutoff = NOW - timedelta(days=30)

    def test_old_tombstone_expires(self):
        assert is_expired({"numero": "A1", "deleted": True, "updatedAt": _days_ago(40)}, self.cutoff)

    def test_recent_tombstone_kept(self):
        assert not is_expired({"numero": "A1", "deleted": True, "updatedAt": _days_ago(10)}, self.cutoff)

    def test_live_record_never_expires(self):
        assert not is_expired({"numero": "A1", "updatedAt": _days_ago(400)}, self.cutoff)

    def test_tombstone_without_timestamp_kept(self):
        assert not is_expired({"numero": "A1", "deleted": True}, self.cutoff)
        assert not is_expired({"numero": "A1", "deleted": True, "updatedAt": "unknown"}, self.cutoff)

    def test_fecha_used_as_fallback(self):
        assert is_expired({"numero": "A1", "deleted": True, "fecha": _days_ago(31)}, self.cutoff)


class TestSweepDataset:
    """Test sweeping a single dataset."""

    def test_sweep_removes_only_expired(self):
        dataset = {
            "cotizaciones": [
                {"numero": "A1", "deleted": True, "updatedAt": _days_ago(40)},
                {"numero": "A2", "deleted": True, "updatedAt": _days_ago(10)},
                {"numero": "A3", "updatedAt": _days_ago(90)},
            ],
            "clientes": [{"rut": "1", "deleted": True}],
            "empresa": {"nombre": "X"}
        }

        swept, removed = sweep_dataset(dataset, now=NOW, retention_days=30)

        assert [r["numero"] for r in swept["cotizaciones"]] == ["A2", "A3"]
        assert swept["clientes"] == [{"rut": "1", "deleted": True}]
        assert swept["empresa"] == {"nombre": "X"}
        assert removed == {"cotizaciones": 1}
        # Input untouched
        assert len(dataset["cotizaciones"]) == 3

    def test_nothing_to_remove(self):
        dataset = {"clientes": [{"rut": "1"}]}
        swept, removed = sweep_dataset(dataset, now=NOW, retention_days=30)

        assert removed == {}
        assert swept == dataset


class TestRunRetentionSweep:
    """Test the sweep over every stored dataset."""

    def test_sweep_rewrites_changed_datasets(self, temp_db):
        dao.save_dataset("empresa-a", {"ordenesTrabajo": [
            {"numero": "OT-1", "deleted": True, "updatedAt": _days_ago(45)},
            {"numero": "OT-2", "updatedAt": _days_ago(45)},
        ]})
        dao.save_dataset("empresa-b", {"clientes": [{"rut": "1", "deleted": True, "updatedAt": _days_ago(5)}]})

        report = run_retention_sweep(now=NOW, retention_days=30)

        assert isinstance(report, SweepReport)
        assert report.datasets_scanned == 2
        assert report.datasets_rewritten == 1
        assert report.records_removed == 1
        assert report.removed_by_user == {"empresa-a": {"ordenesTrabajo": 1}}
        assert report.errors == []
        assert report.completed_at is not None

        assert [r["numero"] for r in dao.load_dataset("empresa-a").content["ordenesTrabajo"]] == ["OT-2"]
        assert len(dao.load_dataset("empresa-b").content["clientes"]) == 1

    def test_sweep_does_not_bump_version(self, temp_db):
        dao.save_dataset("empresa-a", {"clientes": [{"rut": "1", "deleted": True, "updatedAt": _days_ago(60)}]})

        run_retention_sweep(now=NOW, retention_days=30)

        assert dao.load_dataset("empresa-a").version == 1

    def test_unchanged_datasets_are_not_written(self, temp_db):
        dao.save_dataset("empresa-a", {"clientes": [{"rut": "1"}]})

        with patch("recordsync.core.dao.replace_content") as mock_replace:
            report = run_retention_sweep(now=NOW, retention_days=30)

        mock_replace.assert_not_called()
        assert report.datasets_rewritten == 0

    def test_storage_failure_is_reported(self, temp_db):
        dao.save_dataset("empresa-a", {"clientes": [{"rut": "1", "deleted": True, "updatedAt": _days_ago(60)}]})

        with patch("recordsync.core.dao.replace_content", side_effect=PersistenceError("read-only database")):
            report = run_retention_sweep(now=NOW, retention_days=30)

        assert report.records_removed == 0
        assert len(report.errors) == 1
        assert "empresa-a" in report.errors[0]

    def test_report_to_dict(self, temp_db):
        report = run_retention_sweep(now=NOW, retention_days=30)
        data = report.to_dict()

        assert data["operation"] == "retention_sweep"
        assert data["retention_days"] == 30
        assert "completed_at" in data
