"""
Network monitor - the source of online/offline notifications for the
coordinator.

Transitions come either from ``set_online`` (pushed by the host application,
e.g. an OS network-change hook) or from an optional background thread that
probes the sync server at a fixed interval.
"""

import threading
from typing import Callable, Optional, Set

from ..util.logging import logger

Listener = Callable[[], None]


class NetworkMonitor:
    """Tracks reachability and notifies listeners on transitions."""

    def __init__(self, probe: Callable[[], bool] = None, check_interval_sec: float = 30.0):
        self.probe = probe
        self.check_interval_sec = check_interval_sec
        self.online: Optional[bool] = None
        self._online_listeners: Set[Listener] = set()
        self._offline_listeners: Set[Listener] = set()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_listener(self, on_online: Listener, on_offline: Listener):
        with self._lock:
            self._online_listeners.add(on_online)
            self._offline_listeners.add(on_offline)

    def remove_listener(self, on_online: Listener, on_offline: Listener):
        with self._lock:
            self._online_listeners.discard(on_online)
            self._offline_listeners.discard(on_offline)

    def set_online(self, online: bool):
        """Record the current state; listeners fire only on a change."""
        with self._lock:
            changed = self.online is not None and self.online != online
            self.online = online
            listeners = list(self._online_listeners if online else self._offline_listeners)

        if not changed:
            return

        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")

    def check(self) -> bool:
        """Probe once and publish the result."""
        if self.probe is None:
            return bool(self.online)
        online = bool(self.probe())
        self.set_online(online)
        return online

    def start_polling(self):
        """Probe in the background every ``check_interval_sec`` seconds."""
        if self.probe is None or self._thread is not None:
            return
        # Each poller owns its event so a lingering one still sees its stop
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._poll, args=(self._stop_event,), name="network-monitor", daemon=True)
        self._thread.start()

    def stop_polling(self):
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None

    def _poll(self, stop_event: threading.Event):
        while not stop_event.wait(self.check_interval_sec):
            try:
                self.check()
            except Exception as e:
                logger.warning(f"Connectivity probe raised: {e}")
