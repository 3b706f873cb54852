"""
Structured logging for sync operations: coordinator lifecycle, merges,
retention sweeps and scheduled tasks.

Dataset contents never reach the log. Helpers log identities, versions and
per-collection counts; ``sanitize_payload`` collapses anything record-shaped
into a size marker.
"""

import logging
from typing import Any, Dict, Iterable

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Fields that carry dataset content
REDACTED_FIELDS = ("data", "merged", "content", "records", "pdfs", "password", "secret")
MAX_STRING_LENGTH = 100


class StructuredLogger:
    """Thin wrapper around a stdlib logger with replication-specific helpers."""

    def __init__(self, name: str = "recordsync", level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Emit ``Operation: <op>, Status: <status>[, Details: {...}]``."""
        parts = [f"Operation: {operation}", f"Status: {status}"]
        if details:
            parts.append(f"Details: {details}")

        level = logging.ERROR if status in ("failed", "error") else logging.INFO
        self.logger.log(level, ", ".join(parts))

    def log_sync_event(self, user_key: str, event_type: str, details: Dict[str, Any] = None):
        status = "failed" if event_type == "sync-error" else "success"
        self.log_operation(f"sync.{event_type}", status, dict({"user_key": user_key}, **(details or {})))

    def log_merge(self, user_key: str, collections: Dict[str, Dict[str, int]], status: str = "success"):
        """Per-collection merge counters for one push."""
        self.log_operation("merge", status, {"user_key": user_key, "collections": collections})

    def log_sweep(self, user_key: str, removed: Dict[str, int], status: str = "success"):
        self.log_operation("retention.sweep", status, {
            "user_key": user_key,
            "removed": removed,
            "total_removed": sum(removed.values())
        })

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float,
                           status: str = "success", details: Dict[str, Any] = None):
        """Record one scheduled run with its duration in milliseconds."""
        summary = {"duration_ms": round((end_time - start_time) * 1000, 2)}
        summary.update(details or {})
        self.log_operation(f"heartbeat.{task_name}", status, summary)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def exception(self, message: str) -> None:
        """Error with the active traceback attached."""
        self.logger.exception(message)


logger = StructuredLogger()


def _size_marker(value: Any) -> str:
    if isinstance(value, list):
        return f"[{len(value)} records]"
    if isinstance(value, dict):
        return f"[{len(value)} fields]"
    return "[REDACTED]"


def sanitize_payload(payload: Any, redact: Iterable[str] = REDACTED_FIELDS) -> Any:
    """
    Make a payload safe to log.

    Redacted fields are replaced by a size marker, lists of records by a
    record count and long strings are truncated.
    """
    redact = tuple(redact)

    if isinstance(payload, dict):
        return {
            key: _size_marker(value) if key in redact else sanitize_payload(value, redact)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        if any(isinstance(item, dict) for item in payload):
            return _size_marker(payload)
        return [sanitize_payload(item, redact) for item in payload]
    if isinstance(payload, str) and len(payload) > MAX_STRING_LENGTH:
        return payload[:MAX_STRING_LENGTH] + "..."
    return payload


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None):
    """Log an audit entry: identifiers verbatim, payload sanitized."""
    entry = dict(identifiers or {})
    if payload:
        entry["payload"] = sanitize_payload(payload)
    logger.log_operation(event_type.replace(".", "_"), "audit", entry)
