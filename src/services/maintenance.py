"""
Registry maintenance jobs.

These run off the hot ingestion path (cron, or by hand) and each takes the
single-writer ingestion lock, so they never interleave with a dedup batch:

- Stale sweep: active listings not reconfirmed within the window become
  'inactive'. A later scrape with changed content reactivates them.
- Duplicate compaction: rows sharing (case_number, address) are collapsed
  onto the lowest id.
- Hash backfill: listings stored without a data_hash get one.
- Update summary: totals for monitoring.

Usage:
    python -m src.services.maintenance --sweep
    python -m src.services.maintenance --sweep --window-days 14
    python -m src.services.maintenance --compact --backfill-hashes
    python -m src.services.maintenance --all
"""

import argparse
import sys
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from config.constants import OUTPUT_SEPARATOR
from config.settings import get_settings
from src.core.models import AuctionRecord, utcnow
from src.core.repository import AuctionRepository
from src.utils.db_deduplicator import compute_data_hash
from src.utils.ingest_lock import IngestLock
from src.utils.logger import get_logger

logger = get_logger(__name__)


def _lock(session: Session, holder: str, timeout_seconds: Optional[float]) -> IngestLock:
    if timeout_seconds is None:
        timeout_seconds = get_settings().ingest_lock_timeout_seconds
    return IngestLock(session.get_bind(), timeout_seconds, holder=holder)


# ============================================================================
# STALE SWEEP
# ============================================================================

def deactivate_stale(
    session: Session,
    window_days: Optional[int] = None,
    now: Optional[datetime] = None,
    lock_timeout_seconds: Optional[float] = None,
) -> int:
    """
    Mark active listings not seen within the window as inactive.

    A listing's last sighting is last_checked_at, or scraped_at when it was
    never checked.

    Args:
        session: SQLAlchemy database session
        window_days: Staleness window (defaults to STALE_WINDOW_DAYS)
        now: Reference time (defaults to the current UTC time)

    Returns:
        Number of listings deactivated
    """
    window_days = window_days if window_days is not None else get_settings().stale_window_days
    cutoff = (now or utcnow()) - timedelta(days=window_days)
    last_seen = func.coalesce(AuctionRecord.last_checked_at, AuctionRecord.scraped_at)

    with _lock(session, "stale-sweep", lock_timeout_seconds):
        result = session.execute(
            update(AuctionRecord)
            .where(AuctionRecord.current_status == "active")
            .where(last_seen < cutoff)
            .values(current_status="inactive")
            .execution_options(synchronize_session=False)
        )
        session.commit()
        session.expire_all()

    count = result.rowcount or 0
    logger.info(f"Stale sweep: {count} listings not seen since {cutoff:%Y-%m-%d %H:%M} marked inactive")
    return count


# ============================================================================
# DUPLICATE COMPACTION
# ============================================================================

def find_duplicate_groups(session: Session) -> List[Dict[str, Any]]:
    """(case_number, address) groups holding more than one row."""
    stmt = (
        select(
            AuctionRecord.case_number,
            AuctionRecord.address,
            func.min(AuctionRecord.id).label("keep_id"),
            func.count(AuctionRecord.id).label("rows"),
        )
        .group_by(AuctionRecord.case_number, AuctionRecord.address)
        .having(func.count(AuctionRecord.id) > 1)
    )
    return [row._asdict() for row in session.execute(stmt)]


def compact_duplicates(session: Session, lock_timeout_seconds: Optional[float] = None) -> int:
    """
    Keep the lowest id of each (case_number, address) group and delete the rest.

    Analyses of the deleted rows go with them (ON DELETE CASCADE).

    Returns:
        Number of rows deleted
    """
    deleted = 0
    with _lock(session, "compaction", lock_timeout_seconds):
        groups = find_duplicate_groups(session)
        for group in groups:
            doomed = list(session.scalars(
                select(AuctionRecord.id).where(
                    AuctionRecord.case_number == group["case_number"],
                    AuctionRecord.address == group["address"],
                    AuctionRecord.id != group["keep_id"],
                )
            ))
            session.execute(
                delete(AuctionRecord)
                .where(AuctionRecord.id.in_(doomed))
                .execution_options(synchronize_session=False)
            )
            deleted += len(doomed)
            logger.debug(f"Compacted {group['case_number']} / {group['address']}: kept #{group['keep_id']}, removed {doomed}")
        session.commit()
        session.expire_all()

    logger.info(f"Compaction: {len(groups)} duplicate groups, {deleted} rows removed")
    return deleted


# ============================================================================
# HASH BACKFILL / SUMMARY
# ============================================================================

def backfill_hashes(session: Session, lock_timeout_seconds: Optional[float] = None) -> int:
    """Compute data_hash for listings stored without one."""
    with _lock(session, "hash-backfill", lock_timeout_seconds):
        records = session.scalars(select(AuctionRecord).where(AuctionRecord.data_hash.is_(None))).all()
        for record in records:
            record.data_hash = compute_data_hash(record.to_dict())
        session.commit()

    logger.info(f"Hash backfill: {len(records)} listings hashed")
    return len(records)


def update_summary(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Log and return registry totals."""
    stats = AuctionRepository(session).summary_stats(now)

    logger.info(OUTPUT_SEPARATOR)
    logger.info("REGISTRY SUMMARY")
    logger.info(OUTPUT_SEPARATOR)
    logger.info(f"  Total listings:        {stats['total_records']:>8,}")
    logger.info(f"  Active:                {stats['active_records']:>8,}")
    logger.info(f"  Inactive:              {stats['inactive_records']:>8,}")
    logger.info(f"  Checked today:         {stats['checked_today']:>8,}")
    logger.info(f"  Avg check count:       {stats['avg_check_count']:>8}")
    logger.info(f"  Avg update count:      {stats['avg_updated_count']:>8}")
    return stats


# ============================================================================
# CLI
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    from src.core.database import get_db_context
    from src.utils.logger import setup_logging

    parser = argparse.ArgumentParser(
        description="Auction registry maintenance jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--sweep", action="store_true", help="Deactivate stale listings")
    parser.add_argument("--window-days", type=int, default=None, help="Staleness window (default: STALE_WINDOW_DAYS)")
    parser.add_argument("--compact", action="store_true", help="Collapse duplicate (case, address) rows")
    parser.add_argument("--backfill-hashes", action="store_true", help="Hash listings stored without a data_hash")
    parser.add_argument("--all", action="store_true", help="Run every job")
    args = parser.parse_args(argv)

    setup_logging()

    if not (args.sweep or args.compact or args.backfill_hashes or args.all):
        parser.print_help()
        return 1

    logger.info(OUTPUT_SEPARATOR)
    logger.info(f"Registry maintenance - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(OUTPUT_SEPARATOR)

    with get_db_context() as session:
        if args.backfill_hashes or args.all:
            backfill_hashes(session)
        if args.compact or args.all:
            compact_duplicates(session)
        if args.sweep or args.all:
            deactivate_stale(session, args.window_days)
        update_summary(session)

    return 0


if __name__ == "__main__":
    sys.exit(main())
