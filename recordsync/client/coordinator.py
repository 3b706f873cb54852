"""
Sync Coordinator - decides when to synchronize and runs the push-then-pull
cycle for one user key.

A cycle reads the local dataset, pushes it unless the installation looks
fresh (every collection empty), pulls the reconciled dataset and overwrites
the local copy with it. Cycles never overlap inside one coordinator and
``sync_now()`` never raises: every outcome is a ``SyncResult`` plus events
delivered to subscribers.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

from .connectivity import NetworkMonitor
from .local_store import LocalStore
from .transport import SyncTransport
from ..core.config import SyncSettings
from ..core.dataset import Dataset, is_fresh
from ..core.errors import ConnectivityError, ValidationError
from ..util.logging import logger

EVENT_ONLINE = "online"
EVENT_OFFLINE = "offline"
EVENT_SYNC_START = "sync-start"
EVENT_SYNC_SUCCESS = "sync-success"
EVENT_SYNC_ERROR = "sync-error"
EVENT_SYNC_END = "sync-end"


@dataclass
class SyncEvent:
    """Lifecycle notification delivered to subscribers."""
    type: str
    timestamp: datetime
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "timestamp": self.timestamp.isoformat()}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SyncResult:
    """Outcome of one ``sync_now()`` call.

    status is one of: success, busy, offline, error.
    """
    success: bool
    status: str
    message: str = ""
    data: Optional[Dataset] = None
    pushed: bool = False
    version: Optional[int] = None
    retry_scheduled: bool = False


Listener = Callable[[SyncEvent], None]


class SyncCoordinator:
    """Owns connectivity state, the recurring schedule and the sync cycle."""

    def __init__(
        self,
        user_key: str,
        store: LocalStore,
        transport: SyncTransport = None,
        settings: SyncSettings = None,
        monitor: NetworkMonitor = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        if not user_key:
            raise ValidationError("userKey is required")

        self.user_key = user_key
        self.store = store
        self.settings = settings or SyncSettings.from_env()
        self.transport = transport or SyncTransport(self.settings)
        self.monitor = monitor or NetworkMonitor(
            probe=self.transport.health,
            check_interval_sec=self.settings.connectivity_check_sec
        )
        self.timer_factory = timer_factory

        self.is_online = True
        self.is_syncing = False
        self.last_sync_time: Optional[datetime] = None
        self.retry_count = 0
        self.last_error: Optional[str] = None
        self.running = False
        self._stopped = False

        self._listeners: Set[Listener] = set()
        self._lock = threading.Lock()
        self._timers: Set[Any] = set()
        self._stop_event: Optional[threading.Event] = None
        self._schedule_thread: Optional[threading.Thread] = None

    # Lifecycle

    def start(self) -> bool:
        """Begin monitoring connectivity and syncing on a schedule."""
        if not self.settings.enabled:
            logger.info("Sync disabled (SYNC_ENABLED=false)")
            return False

        if self.running:
            return True

        logger.info(f"Starting sync coordinator for '{self.user_key}'")
        with self._lock:
            self._stopped = False
        self.running = True

        self.monitor.add_listener(self.handle_online, self.handle_offline)
        self.check_connection()
        self.monitor.start_polling()

        self._stop_event = threading.Event()
        self._schedule_thread = threading.Thread(
            target=self._run_schedule,
            args=(self._stop_event,),
            name=f"sync-schedule-{self.user_key}",
            daemon=True
        )
        self._schedule_thread.start()

        # First cycle shortly after launch instead of a full interval later
        self._schedule(self.settings.startup_delay_sec, self._tick)
        return True

    def stop(self):
        """Stop listening and cancel every pending timer. Idempotent."""
        with self._lock:
            self._stopped = True
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()

        self.monitor.remove_listener(self.handle_online, self.handle_offline)
        self.monitor.stop_polling()

        if self._stop_event is not None:
            self._stop_event.set()

        thread = self._schedule_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._schedule_thread = None

        if self.running:
            logger.info(f"Sync coordinator for '{self.user_key}' stopped")
        self.running = False

    def _run_schedule(self, stop_event: threading.Event):
        while not stop_event.wait(self.settings.interval_sec):
            self._tick()

    def _tick(self):
        if self._stopped:
            return
        if not self.is_online and not self.check_connection():
            return
        if self.is_syncing:
            return
        self.sync_now()

    def _schedule(self, delay: float, func: Callable[[], Any]):
        """Run ``func`` after ``delay`` seconds. Returns None once stopped."""
        holder = {}

        def fire():
            with self._lock:
                self._timers.discard(holder.get("timer"))
                if self._stopped:
                    return
            func()

        with self._lock:
            if self._stopped:
                return None
            timer = self.timer_factory(delay, fire)
            holder["timer"] = timer
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timers.add(timer)
        timer.start()
        return timer

    # Connectivity

    def _set_online(self, online: bool, always_notify: bool = False) -> bool:
        with self._lock:
            changed = self.is_online != online
            self.is_online = online

        if changed or always_notify:
            self._emit(EVENT_ONLINE if online else EVENT_OFFLINE)
        return changed

    def check_connection(self) -> bool:
        """Probe the server's health endpoint and publish transitions."""
        online = self.transport.health()
        self._set_online(online)
        return online

    def handle_online(self):
        """Connectivity restored: notify and resync shortly after."""
        if self._stopped:
            return
        logger.info("Connection restored")
        self._set_online(True, always_notify=True)
        self._schedule(self.settings.reconnect_delay_sec, self.sync_now)

    def handle_offline(self):
        logger.info("Connection lost")
        self._set_online(False, always_notify=True)

    # Sync cycle

    def sync_now(self) -> SyncResult:
        """Run one push-then-pull cycle. Never raises."""
        with self._lock:
            if self.is_syncing:
                logger.info("Sync already in progress")
                return SyncResult(success=False, status="busy", message="Sync already in progress")

            if not self.is_online:
                logger.info("Offline - sync skipped")
                return SyncResult(success=False, status="offline", message="No connection")

            self.is_syncing = True

        self._emit(EVENT_SYNC_START)
        try:
            return self._run_cycle()
        except Exception as e:
            return self._handle_failure(e)
        finally:
            with self._lock:
                self.is_syncing = False
            self._emit(EVENT_SYNC_END)

    def _run_cycle(self) -> SyncResult:
        local = self.store.read(self.user_key)

        pushed = False
        version = None
        if is_fresh(local):
            # Pushing an empty dataset would read as "everything deleted"
            logger.info(f"No local records for '{self.user_key}' - fresh installation, skipping push")
        else:
            response = self.transport.push(self.user_key, local)
            pushed = True
            if isinstance(response, dict):
                version = response.get("version")

        data = self.transport.pull(self.user_key)
        self.store.write(self.user_key, data)

        now = datetime.now(timezone.utc)
        with self._lock:
            self.last_sync_time = now
            self.retry_count = 0
            self.last_error = None

        self._emit(EVENT_SYNC_SUCCESS, timestamp=now)
        return SyncResult(
            success=True,
            status="success",
            message="Sync completed",
            data=data,
            pushed=pushed,
            version=version
        )

    def _handle_failure(self, error: Exception) -> SyncResult:
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        if not hasattr(error, "retryable"):
            logger.exception(f"Unexpected sync failure for '{self.user_key}'")

        with self._lock:
            self.retry_count += 1
            self.last_error = message
            attempts = self.retry_count

        if isinstance(error, ConnectivityError):
            self._set_online(False)

        retry = getattr(error, "retryable", True) and attempts < self.settings.max_retries
        if retry and self._schedule(self.settings.retry_delay_sec, self.sync_now) is not None:
            logger.warning(f"Sync failed ({attempts}/{self.settings.max_retries}), retrying in {self.settings.retry_delay_sec}s: {message}")
        else:
            retry = False
            logger.error(f"Sync failed for '{self.user_key}': {message}")

        self._emit(EVENT_SYNC_ERROR, error=message)
        return SyncResult(success=False, status="error", message=message, retry_scheduled=retry)

    # Subscribers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.add(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener):
        with self._lock:
            self._listeners.discard(listener)

    def _emit(self, event_type: str, timestamp: datetime = None, error: str = None):
        event = SyncEvent(type=event_type, timestamp=timestamp or datetime.now(timezone.utc), error=error)
        logger.log_sync_event(self.user_key, event_type, {"error": error} if error else None)

        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Sync listener failed on '{event_type}': {e}")

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the coordinator state for UI polling."""
        with self._lock:
            return {
                "user_key": self.user_key,
                "is_online": self.is_online,
                "is_syncing": self.is_syncing,
                "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
                "retry_count": self.retry_count,
                "last_error": self.last_error,
                "running": self.running
            }
