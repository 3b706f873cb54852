"""
One coordinator per user key, process-wide.

``get_coordinator`` creates the coordinator on first use and returns the same
instance afterwards; ``dispose`` stops it and forgets it.
"""

import threading
from typing import Dict, List

from .coordinator import SyncCoordinator
from .local_store import LocalStore
from ..core.errors import ValidationError

_instances: Dict[str, SyncCoordinator] = {}
_guard = threading.Lock()


def get_coordinator(user_key: str, store: LocalStore = None, **kwargs) -> SyncCoordinator:
    """Return the shared coordinator for ``user_key``, creating it if needed."""
    if not user_key:
        raise ValidationError("userKey is required")

    with _guard:
        coordinator = _instances.get(user_key)
        if coordinator is None:
            if store is None:
                raise ValueError(f"A local store is required to create the coordinator for '{user_key}'")
            coordinator = SyncCoordinator(user_key, store, **kwargs)
            _instances[user_key] = coordinator
        return coordinator


def dispose(user_key: str) -> bool:
    """Stop and drop the coordinator for ``user_key``. Returns False if none existed."""
    with _guard:
        coordinator = _instances.pop(user_key, None)

    if coordinator is None:
        return False
    coordinator.stop()
    return True


def dispose_all():
    for user_key in active_user_keys():
        dispose(user_key)


def active_user_keys() -> List[str]:
    with _guard:
        return list(_instances.keys())
