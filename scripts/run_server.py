#!/usr/bin/env python3
"""
Start the replication API server.
"""

import argparse
import sys
from pathlib import Path

import uvicorn

# Add the repository root to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from recordsync.core.config import VERSION, get_db_path, get_retention_days, is_retention_enabled


def main():
    parser = argparse.ArgumentParser(description="Run the recordsync replication server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=3002, help="Port to listen on (default: 3002)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()

    print(f"recordsync server v{VERSION}")
    print(f"Database: {get_db_path()}")
    if is_retention_enabled():
        print(f"Retention sweep: daily, {get_retention_days()} day window")
    else:
        print("Retention sweep: disabled")

    uvicorn.run("recordsync.api.main:app", host=args.host, port=args.port, reload=args.reload, log_level="info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
