"""
Tests for dataset helpers: merge keys, timestamps, tombstones and the
fresh-installation check.
"""

from datetime import datetime, timezone

from recordsync.core.dataset import (
    collection_sizes,
    default_dataset,
    effective_timestamp,
    is_fresh,
    is_tombstone,
    iter_collections,
    merge_key,
    merge_key_field,
    parse_timestamp,
    tombstone,
)


class TestMergeKeys:
    """Test merge key resolution per collection."""

    def test_known_collections(self):
        assert merge_key_field("cotizaciones") == "numero"
        assert merge_key_field("clientes") == "rut"
        assert merge_key_field("ordenesCompra") == "numero"
        assert merge_key_field("ordenesTrabajo") == "numero"

    def test_unknown_collection_uses_id(self):
        assert merge_key_field("productos") == "id"
        assert merge_key("productos", {"id": 7}) == 7

    def test_missing_or_empty_key(self):
        assert merge_key("clientes", {"nombre": "ACME"}) is None
        assert merge_key("clientes", {"rut": ""}) is None
        assert merge_key("clientes", "not a record") is None

    def test_non_scalar_key_is_unusable(self):
        assert merge_key("cotizaciones", {"numero": ["A", "1"]}) is None
        assert merge_key("productos", {"id": {"a": 1}}) is None
        assert merge_key("productos", {"id": True}) is None
        assert merge_key("productos", {"id": 0}) == 0

    def test_default_dataset_has_known_collections(self):
        dataset = default_dataset()
        assert set(dataset) == {"cotizaciones", "clientes", "ordenesCompra", "ordenesTrabajo"}
        assert all(records == [] for records in dataset.values())


class TestCollections:
    """Test collection discovery."""

    def test_only_lists_are_collections(self):
        dataset = {"clientes": [{"rut": "1"}], "empresa": {"nombre": "X"}, "version": 3}
        assert dict(iter_collections(dataset)) == {"clientes": [{"rut": "1"}]}
        assert collection_sizes(dataset) == {"clientes": 1}

    def test_is_fresh(self):
        assert is_fresh(default_dataset())
        assert is_fresh({})
        assert is_fresh(None)
        assert is_fresh({"empresa": {"nombre": "X"}, "clientes": []})
        assert not is_fresh({"clientes": [], "cotizaciones": [{"numero": "A1"}]})


class TestTimestamps:
    """Test timestamp parsing and the effective timestamp."""

    def test_parse_iso_with_z(self):
        parsed = parse_timestamp("2024-02-01T10:00:00Z")
        assert parsed == datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)

    def test_parse_date_only_is_utc(self):
        assert parse_timestamp("2024-01-01") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_parse_epoch_millis(self):
        assert parse_timestamp(1704067200000) == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_parse_invalid(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(True) is None

    def test_effective_timestamp_falls_back_to_fecha(self):
        record = {"numero": "A1", "fecha": "2024-03-01"}
        assert effective_timestamp(record) == datetime(2024, 3, 1, tzinfo=timezone.utc)

        record["updatedAt"] = "2024-04-01"
        assert effective_timestamp(record) == datetime(2024, 4, 1, tzinfo=timezone.utc)

    def test_effective_timestamp_missing(self):
        assert effective_timestamp({"numero": "A1"}) is None


class TestTombstones:
    """Test soft deletion."""

    def test_tombstone_flags_and_stamps(self):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        record = {"numero": "A1", "monto": 100}

        deleted = tombstone(record, now=now)

        assert deleted["deleted"] is True
        assert deleted["updatedAt"] == now.isoformat()
        assert deleted["monto"] == 100
        assert is_tombstone(deleted)
        assert not is_tombstone(record)

    def test_tombstone_strips_nested_attachments(self):
        record = {
            "numero": "OT-1",
            "pdfs": [{"name": "a.pdf", "data": "..."}],
            "items": [{"codigo": "X", "pdfs": [{"name": "b.pdf"}]}]
        }

        deleted = tombstone(record)

        assert deleted["pdfs"] == []
        assert deleted["items"][0]["pdfs"] == []
        assert deleted["items"][0]["codigo"] == "X"
        # Original untouched
        assert len(record["pdfs"]) == 1
        assert len(record["items"][0]["pdfs"]) == 1
        assert "deleted" not in record
