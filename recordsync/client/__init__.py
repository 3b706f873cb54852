"""Client side of the sync protocol: coordinator, transport and local stores."""

from .coordinator import SyncCoordinator, SyncEvent, SyncResult
from .local_store import LocalStore, MemoryLocalStore, SQLiteLocalStore
from .registry import dispose, get_coordinator
from .transport import SyncTransport
