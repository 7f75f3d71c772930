"""
Maintenance job tests: stale sweep, duplicate compaction, hash backfill, summary.
"""

from datetime import datetime, timedelta

from sqlalchemy import func, select

from src.core.models import AnalysisResult, AuctionRecord
from src.loaders import AuctionRecordLoader
from src.services.maintenance import (
    backfill_hashes,
    compact_duplicates,
    deactivate_stale,
    find_duplicate_groups,
    update_summary,
)
from src.utils.db_deduplicator import compute_data_hash

NOW = datetime(2026, 10, 19, 12, 0, 0)


def add_analysis(session, record_id):
    session.add(AnalysisResult(
        auction_record_id=record_id,
        investment_score=60,
        profitability_score=50,
        risk_score=40,
        liquidity_score=70,
        location_score=80,
        legal_risk_score=10,
        market_trend_score=50,
        success_probability=60.0,
        estimated_competition_level=3,
        price_volatility_index=3.0,
        investment_grade="B",
    ))
    session.commit()


def test_stale_sweep_uses_window_boundary(session, add_record):
    seen_31_days_ago = add_record(case_number="2024타경1", last_checked_at=NOW - timedelta(days=31))
    seen_29_days_ago = add_record(case_number="2024타경2", last_checked_at=NOW - timedelta(days=29))

    count = deactivate_stale(session, window_days=30, now=NOW)

    assert count == 1
    assert session.get(AuctionRecord, seen_31_days_ago.id).current_status == "inactive"
    assert session.get(AuctionRecord, seen_29_days_ago.id).current_status == "active"


def test_stale_sweep_falls_back_to_scraped_at(session, add_record):
    never_checked = add_record(case_number="2024타경3", scraped_at=NOW - timedelta(days=45), last_checked_at=None)
    deactivate_stale(session, window_days=30, now=NOW)
    assert session.get(AuctionRecord, never_checked.id).current_status == "inactive"


def test_stale_sweep_only_touches_active_listings(session, add_record):
    sold = add_record(case_number="2024타경4", current_status="sold", last_checked_at=NOW - timedelta(days=90))
    assert deactivate_stale(session, window_days=30, now=NOW) == 0
    assert session.get(AuctionRecord, sold.id).current_status == "sold"


def test_swept_listing_comes_back_through_a_changed_scrape(session, record_fields):
    loader = AuctionRecordLoader(session)
    loader.process_batch([record_fields()], "busan")
    record = session.scalars(select(AuctionRecord)).one()

    deactivate_stale(session, window_days=0, now=record.last_checked_at + timedelta(seconds=1))
    assert session.get(AuctionRecord, record.id).current_status == "inactive"

    result = loader.process_batch([record_fields(minimum_sale_price=332_800_000)], "busan")
    assert result.updated == 1
    assert session.get(AuctionRecord, record.id).current_status == "active"


def test_compaction_keeps_lowest_id(session, add_record):
    keep = add_record()
    duplicate = add_record()
    other = add_record(case_number="2024타경99999")
    add_analysis(session, duplicate.id)

    assert len(find_duplicate_groups(session)) == 1
    deleted = compact_duplicates(session)

    assert deleted == 1
    remaining = list(session.scalars(select(AuctionRecord.id).order_by(AuctionRecord.id)))
    assert remaining == [keep.id, other.id]
    assert session.scalar(select(func.count(AnalysisResult.id))) == 0
    assert find_duplicate_groups(session) == []


def test_backfill_hashes(session, add_record):
    record = add_record()
    assert backfill_hashes(session) == 1
    assert session.get(AuctionRecord, record.id).data_hash == compute_data_hash(record.to_dict())
    assert backfill_hashes(session) == 0


def test_update_summary(session, add_record):
    add_record(case_number="2024타경1", last_checked_at=NOW - timedelta(hours=2), check_count=3, updated_count=1)
    add_record(case_number="2024타경2", current_status="inactive", last_checked_at=NOW - timedelta(days=40), check_count=1)

    stats = update_summary(session, now=NOW)

    assert stats["total_records"] == 2
    assert stats["active_records"] == 1
    assert stats["inactive_records"] == 1
    assert stats["checked_today"] == 1
    assert stats["avg_check_count"] == 2.0
    assert stats["avg_updated_count"] == 0.5
