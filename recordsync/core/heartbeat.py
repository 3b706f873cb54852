"""
Heartbeat - cooperative periodic task scheduler used by the sync server to run
the retention sweeper on a fixed schedule.
"""

import threading
import time
from typing import Callable, Dict, Optional

from ..util.logging import logger


tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run, not_before}
running = False
shutdown_event = None
_thread: Optional[threading.Thread] = None

TICK_SEC = 0.1
SLOW_CYCLE_SEC = 10.0


def register_task(name: str, interval_sec: int, func: Callable, initial_delay_sec: float = 0):
    """
    Register a task to be executed periodically.

    Args:
        name: Unique task identifier
        interval_sec: How often to run this task in seconds
        func: Function to call
        initial_delay_sec: Delay before the first run, counted from registration
    """
    if not callable(func):
        raise ValueError(f"Task function must be callable: {func}")

    if interval_sec < 1:
        raise ValueError(f"Interval must be >= 1 second: {interval_sec}")

    if initial_delay_sec < 0:
        raise ValueError(f"Initial delay must be >= 0: {initial_delay_sec}")

    tasks[name] = {
        "func": func,
        "interval": interval_sec,
        "last_run": None,
        "not_before": time.monotonic() + initial_delay_sec
    }

    logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s, first run in {initial_delay_sec}s)")


def unregister_task(name: str):
    """Remove a task from the registry."""
    if name in tasks:
        del tasks[name]
        logger.info(f"Unregistered heartbeat task '{name}'")


def list_tasks():
    """Return list of registered task names."""
    return list(tasks.keys())


def should_run_task(name: str, task_info: Dict) -> bool:
    """Check if a task should run this cycle."""
    now = time.monotonic()

    if task_info["last_run"] is None:
        return now >= task_info.get("not_before", 0)

    elapsed = now - task_info["last_run"]
    return elapsed >= task_info["interval"]


def run_task(name: str, task_info: Dict):
    """Execute a task and record timing."""
    start_time = time.monotonic()

    try:
        task_info["func"]()
    except Exception as e:
        end_time = time.monotonic()
        # A failed run still counts, so the task waits a full interval
        task_info["last_run"] = end_time
        logger.log_heartbeat_task(name, start_time, end_time, status="failed", details={"error": str(e)})
        raise RuntimeError(f"Task '{name}' failed after {end_time - start_time:.2f}s: {e}")

    end_time = time.monotonic()
    task_info["last_run"] = end_time
    logger.log_heartbeat_task(name, start_time, end_time)


def run_pending():
    """Run every task that is due. Failures are isolated per task."""
    for name, task_info in list(tasks.items()):
        if should_run_task(name, task_info):
            try:
                run_task(name, task_info)
            except RuntimeError as e:
                logger.error(f"Heartbeat task '{name}' failed: {e}")


def _begin():
    global running, shutdown_event

    if running:
        raise RuntimeError("Heartbeat already running")

    running = True
    shutdown_event = threading.Event()
    logger.info(f"Starting heartbeat loop with tasks: {list(tasks.keys())}")


def _loop(event: threading.Event):
    global running

    try:
        while running and not event.is_set():
            start_time = time.monotonic()

            run_pending()

            elapsed = time.monotonic() - start_time
            if elapsed > SLOW_CYCLE_SEC:
                logger.warning(f"Heartbeat cycle too slow ({elapsed:.1f}s)")

            event.wait(TICK_SEC)
    finally:
        running = False
        logger.info("Heartbeat loop stopped")


def start():
    """
    Run the heartbeat loop in the calling thread until ``stop()`` is called.

    Uses time.monotonic() for reliable timing.
    """
    _begin()
    _loop(shutdown_event)


def start_background() -> threading.Thread:
    """Run the heartbeat loop on a daemon thread."""
    global _thread

    _begin()
    _thread = threading.Thread(target=_loop, args=(shutdown_event,), name="heartbeat", daemon=True)
    _thread.start()
    return _thread


def stop(timeout: float = 5.0):
    """Stop the heartbeat loop gracefully."""
    global running, _thread

    if not running:
        logger.info("Heartbeat not running")
        return

    logger.info("Stopping heartbeat loop...")
    running = False

    if shutdown_event:
        shutdown_event.set()

    if _thread is not None and _thread is not threading.current_thread():
        _thread.join(timeout)
    _thread = None


def reset_task(name: str):
    """Reset a task's last_run time to force immediate execution."""
    if name in tasks:
        tasks[name]["last_run"] = None
        tasks[name]["not_before"] = 0
        logger.info(f"Reset heartbeat task '{name}' (will run immediately)")


def get_status():
    """Return current heartbeat status for monitoring."""
    return {
        "status": "running" if running else "stopped",
        "tasks": {
            name: {
                "interval_sec": info["interval"],
                "last_run": info["last_run"],
                "next_run": info["last_run"] + info["interval"] if info["last_run"] else info.get("not_before")
            }
            for name, info in tasks.items()
        }
    }
