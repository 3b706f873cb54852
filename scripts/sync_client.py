#!/usr/bin/env python3
"""
Run a sync coordinator for one user key against a SQLite local store.

One-shot mode performs a single push-then-pull cycle and exits; the default
mode keeps syncing on the configured interval until interrupted.
"""

import argparse
import json
import sys
import time
from pathlib import Path

# Add the repository root to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from recordsync.client import SQLiteLocalStore, dispose, get_coordinator
from recordsync.core.config import SyncSettings, get_local_db_path, validate_sync_config


def main():
    parser = argparse.ArgumentParser(description="Synchronize a local dataset with the sync server")
    parser.add_argument("user_key", help="Identity whose dataset is synchronized")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--local-db", default=None, help="Local SQLite store (default: LOCAL_DB_PATH)")
    parser.add_argument("--url", default=None, help="Sync server URL (default: SYNC_API_URL)")
    args = parser.parse_args()

    settings = SyncSettings.from_env()
    if args.url:
        settings.api_url = args.url.rstrip("/")

    issues = validate_sync_config(settings)
    if issues:
        print(f"ERROR: Invalid sync configuration: {issues}")
        return 1

    store = SQLiteLocalStore(args.local_db or get_local_db_path())
    coordinator = get_coordinator(args.user_key, store, settings=settings)
    coordinator.subscribe(lambda event: print(json.dumps(event.to_dict())))

    if args.once:
        coordinator.check_connection()
        result = coordinator.sync_now()
        print(f"{result.status}: {result.message}")
        dispose(args.user_key)
        return 0 if result.success else 1

    if not coordinator.start():
        print("Sync is disabled (SYNC_ENABLED=false)")
        return 0

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        dispose(args.user_key)

    return 0


if __name__ == "__main__":
    sys.exit(main())
