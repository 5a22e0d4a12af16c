#!/usr/bin/env python3
"""Print the daily action report from the action ledger.

Usage examples:
    # Today's counts (UTC day)
    python scripts/report.py

    # A specific day, including pending and failed actions
    python scripts/report.py --date 2026-10-16 --pending --failed

    # A different database file
    python scripts/report.py --db data/outreach.db
"""

import argparse
import asyncio
import sys
from datetime import UTC, date, datetime
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from outreach.tracking.ledger import ActionLedger


def format_counts(counts: list[dict]) -> list[str]:
    if not counts:
        return ["No actions recorded."]
    width = max(len(row["action_type"]) for row in counts)
    return [f"{row['action_type']:<{width}}  {row['status']:<9}  {row['count']:>5}" for row in counts]


def format_record(record) -> str:  # noqa: ANN001
    line = f"{record.created_at}  {record.action_type}  {record.entity_type}/{record.entity_id}"
    if record.error_message:
        line += f"  ({record.error_message})"
    return line


async def build_report(ledger: ActionLedger, day: date, *, pending: bool, failed: bool) -> str:
    lines = [f"--- Actions on {day.isoformat()} (UTC) ---", ""]
    lines.extend(format_counts(await ledger.counts_by_date(day)))

    if pending:
        records = await ledger.pending(day)
        lines.extend(["", f"Pending ({len(records)}):"])
        lines.extend(format_record(r) for r in records)
    if failed:
        records = await ledger.failed(day)
        lines.extend(["", f"Failed ({len(records)}):"])
        lines.extend(format_record(r) for r in records)
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Show outreach actions for a day")
    parser.add_argument("--date", "-d", help="UTC day as YYYY-MM-DD (default: today)")
    parser.add_argument("--db", type=Path, help="Database file (default: DATABASE_PATH)")
    parser.add_argument("--pending", action="store_true", help="List pending actions")
    parser.add_argument("--failed", action="store_true", help="List failed actions")
    args = parser.parse_args()

    try:
        day = date.fromisoformat(args.date) if args.date else datetime.now(UTC).date()
    except ValueError:
        print(f"ERROR: invalid date {args.date!r}, expected YYYY-MM-DD", file=sys.stderr)
        sys.exit(1)

    ledger = ActionLedger(db_path=args.db) if args.db else ActionLedger.get()
    print(asyncio.run(build_report(ledger, day, pending=args.pending, failed=args.failed)))


if __name__ == "__main__":
    main()
