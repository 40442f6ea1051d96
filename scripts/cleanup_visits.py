#!/usr/bin/env python3
"""Delete site visits older than N days.

Usage:
    python scripts/cleanup_visits.py              # keep the last 365 days
    python scripts/cleanup_visits.py --days 90
    python scripts/cleanup_visits.py --dry-run    # count only
"""
import argparse
import sys
from datetime import timedelta
from pathlib import Path

# Ensure repo root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import func, select

from app.noticeboard.audit import record_event
from app.noticeboard.models import SiteVisit
from app.noticeboard.modules.analytics.service import cleanup_old_visits
from app.noticeboard.utils import utcnow
from scripts._db_utils import default_database_url, script_session


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete old site visit rows")
    parser.add_argument("--days", type=int, default=365, help="Days of history to keep (default 365)")
    parser.add_argument("--dry-run", action="store_true", help="Count only, don't delete")
    args = parser.parse_args()
    if args.days < 1:
        parser.error("--days must be at least 1")

    db_url = default_database_url()
    print(f"Database: {db_url[:50]}...")

    with script_session(db_url) as s:
        cutoff = utcnow() - timedelta(days=args.days)
        stale = s.scalar(select(func.count(SiteVisit.id)).where(SiteVisit.visit_time < cutoff)) or 0
        print(f"Found {stale} visits older than {args.days} days.")
        if args.dry_run or not stale:
            print("[DRY RUN] No changes made." if args.dry_run else "OK: Nothing to delete.")
            return
        deleted = cleanup_old_visits(s, days_to_keep=args.days)
        record_event(
            s,
            actor=None,
            action="analytics.cleanup",
            entity_type="SiteVisit",
            reason=f"Retention {args.days} days",
            metadata={"deleted": deleted},
        )
    print(f"OK: Deleted {deleted} visits.")


if __name__ == "__main__":
    main()
