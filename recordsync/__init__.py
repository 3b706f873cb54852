"""recordsync - offline-first replication of per-user business datasets."""

from .core.config import VERSION as __version__
