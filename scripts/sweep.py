#!/usr/bin/env python3
"""
Command-line retention sweep: physically removes expired tombstones from every
stored dataset, the same job the server runs daily.
"""

import argparse
import json
import sys
from pathlib import Path

# Add the repository root to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from recordsync.core.config import get_retention_days
from recordsync.core.db import init_db
from recordsync.core.retention import SweepReport, run_retention_sweep


def format_report(report: SweepReport) -> str:
    """Format a sweep report for display."""
    lines = [f"Operation: retention_sweep (window: {report.retention_days} days)"]

    if report.completed_at and report.started_at:
        duration = report.completed_at - report.started_at
        lines.append(f"Duration: {duration.total_seconds():.2f} seconds")

    if report.errors:
        lines.append(f"Status: FAILED ({len(report.errors)} errors)")
    else:
        lines.append("Status: SUCCESS")

    lines.append(f"Datasets scanned: {report.datasets_scanned}")
    lines.append(f"Datasets rewritten: {report.datasets_rewritten}")
    lines.append(f"Records removed: {report.records_removed}")

    if report.removed_by_user:
        lines.append("Details:")
        for user_key, removed in report.removed_by_user.items():
            lines.append(f"  {user_key}: {removed}")

    if report.errors:
        lines.append("Errors:")
        for error in report.errors:
            lines.append(f"  - {error}")

    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(
        description="Remove soft-deleted records older than the retention window",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                 # Sweep with RETENTION_DAYS (default 30)
  %(prog)s --days 90       # Keep tombstones for 90 days
  %(prog)s --json          # Output the report as JSON

Environment variables:
- DB_PATH=./data/sync.db (database location)
- RETENTION_DAYS=30 (retention window)
        """
    )

    parser.add_argument(
        "--days", "-d",
        type=int,
        default=None,
        help="Retention window in days (overrides RETENTION_DAYS)"
    )

    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output results as JSON instead of human-readable text"
    )

    args = parser.parse_args()

    days = args.days if args.days is not None else get_retention_days()
    if days < 1:
        parser.error("--days must be >= 1")

    try:
        init_db()
        report = run_retention_sweep(retention_days=days)
    except Exception as e:
        print(f"ERROR: Retention sweep failed: {e}")
        return 1

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        print(format_report(report))

    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
