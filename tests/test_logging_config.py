"""
Tests for structured logging helpers and environment configuration.
"""

import logging

from recordsync.core.config import (
    SyncSettings,
    get_cors_origins,
    get_seed_user_keys,
    validate_retention_config,
    validate_sync_config,
)
from recordsync.util.logging import audit_event, logger, sanitize_payload


class TestStructuredLogging:
    """Test operation logging and payload redaction."""

    def test_failed_operation_logs_error(self, caplog):
        with caplog.at_level(logging.INFO, logger="recordsync"):
            logger.log_operation("sync.push", "failed", {"user_key": "empresa-a"})

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "sync.push" in record.getMessage()

    def test_sweep_log_totals(self, caplog):
        with caplog.at_level(logging.INFO, logger="recordsync"):
            logger.log_sweep("empresa-a", {"clientes": 2, "cotizaciones": 1})

        assert "'total_removed': 3" in caplog.records[-1].getMessage()

    def test_sanitize_redacts_dataset_content(self):
        payload = {
            "user_key": "empresa-a",
            "merged": {"clientes": [{"rut": "1"}]},
            "password": "hunter2",
            "note": "x" * 150
        }

        sanitized = sanitize_payload(payload)

        assert sanitized["user_key"] == "empresa-a"
        assert sanitized["merged"] == "[1 fields]"
        assert sanitized["password"] == "[REDACTED]"
        assert sanitized["note"].endswith("...")
        assert len(sanitized["note"]) == 103

    def test_sanitize_collapses_record_lists(self):
        sanitized = sanitize_payload({"clientes": [{"rut": "1"}, {"rut": "2"}], "tags": ["a", "b"]})

        assert sanitized["clientes"] == "[2 records]"
        assert sanitized["tags"] == ["a", "b"]

    def test_push_summary_passes_through(self):
        summary = {"version": 3, "before": {"clientes": 1}, "after": {"clientes": 2}}
        assert sanitize_payload(summary) == summary

    def test_audit_event_never_logs_records(self, caplog):
        with caplog.at_level(logging.INFO, logger="recordsync"):
            audit_event("sync.push", {"user_key": "empresa-a"}, payload={"data": {"rut": "secret-rut"}})

        message = caplog.records[-1].getMessage()
        assert "sync_push" in message
        assert "secret-rut" not in message


class TestConfig:
    """Test environment-driven settings."""

    def test_seed_user_keys(self, monkeypatch):
        monkeypatch.setenv("SEED_USER_KEYS", " empresa-a,,empresa-b ")
        assert get_seed_user_keys() == ["empresa-a", "empresa-b"]

    def test_cors_origins(self, monkeypatch):
        monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "http://a.test, http://b.test")
        assert get_cors_origins() == ["http://a.test", "http://b.test"]

    def test_sync_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("SYNC_API_URL", "https://sync.example.com/")
        monkeypatch.setenv("SYNC_MAX_RETRIES", "5")
        monkeypatch.setenv("SYNC_ENABLED", "false")

        settings = SyncSettings.from_env()

        assert settings.api_url == "https://sync.example.com"
        assert settings.max_retries == 5
        assert settings.enabled is False

    def test_validate_sync_config(self):
        assert validate_sync_config(SyncSettings(api_url="http://sync.test")) == []

        issues = validate_sync_config(SyncSettings(api_url="ftp://nope", interval_sec=0))
        assert len(issues) == 2

    def test_validate_retention_config(self, monkeypatch):
        monkeypatch.setenv("RETENTION_DAYS", "0")
        assert "RETENTION_DAYS must be >= 1" in validate_retention_config()
