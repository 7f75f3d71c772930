"""
Dedup / update engine tests: classification, balance, storage errors, locking.
"""

import pandas as pd
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from src.core.models import AuctionRecord
from src.loaders import AuctionRecordLoader
from src.utils.db_deduplicator import build_identity_key, compute_data_hash, load_hash_index
from src.utils.ingest_lock import IngestLock, IngestLockTimeout


def all_records(session):
    return list(session.scalars(select(AuctionRecord).order_by(AuctionRecord.id)))


# ============================================================================
# HASHING
# ============================================================================

def test_hash_is_deterministic_and_order_independent(record_fields):
    fields = record_fields()
    reordered = dict(reversed(list(fields.items())))
    assert compute_data_hash(fields) == compute_data_hash(reordered)
    assert len(compute_data_hash(fields)) == 32


def test_hash_ignores_fields_outside_the_hashed_set(record_fields):
    base = record_fields()
    assert compute_data_hash(base) == compute_data_hash(record_fields(special_notes="임차인 점유", court_name="other"))
    assert compute_data_hash(base) != compute_data_hash(record_fields(minimum_sale_price=400_000_000))


def test_identity_key_modes(record_fields):
    fields = record_fields()
    assert build_identity_key(fields, "case_number") == ("2024타경10234",)
    assert build_identity_key(fields, "case_number_address")[1].startswith("부산광역시 해운대구")


def test_unknown_identity_key_fails_fast(session):
    with pytest.raises(ValueError):
        AuctionRecordLoader(session, identity_key="address")


# ============================================================================
# CLASSIFICATION
# ============================================================================

def test_same_record_twice_is_new_then_duplicate(session, record_fields):
    loader = AuctionRecordLoader(session)

    first = loader.process_batch([record_fields()], "busan")
    second = loader.process_batch([record_fields()], "busan")

    assert first.as_dict() == {"new": 1, "updated": 0, "duplicate": 0, "skipped": 0, "total": 1}
    assert second.as_dict() == {"new": 0, "updated": 0, "duplicate": 1, "skipped": 0, "total": 1}

    records = all_records(session)
    assert len(records) == 1
    assert records[0].check_count == 2
    assert records[0].updated_count == 0


def test_changed_price_is_a_single_update(session, record_fields):
    loader = AuctionRecordLoader(session)
    loader.process_batch([record_fields()], "busan")

    result = loader.process_batch([record_fields(minimum_sale_price=332_800_000, failure_count=2)], "busan")

    assert result.as_dict() == {"new": 0, "updated": 1, "duplicate": 0, "skipped": 0, "total": 1}
    [record] = all_records(session)
    assert record.updated_count == 1
    assert record.minimum_sale_price == 332_800_000
    assert record.failure_count == 2
    assert record.data_hash == compute_data_hash(record_fields(minimum_sale_price=332_800_000))
    assert result.updated_ids == [record.id]


def test_update_refreshes_scraped_at_and_last_checked(session, record_fields):
    loader = AuctionRecordLoader(session)
    loader.process_batch([record_fields()], "busan")
    [record] = all_records(session)
    original_scraped_at = record.scraped_at

    loader.process_batch([record_fields(minimum_sale_price=300_000_000)], "busan")
    session.refresh(record)

    assert record.scraped_at > original_scraped_at
    assert record.last_checked_at == record.scraped_at


def test_invalid_records_are_skipped_and_batch_balances(session, record_fields):
    loader = AuctionRecordLoader(session)
    batch = [
        record_fields(),
        record_fields(case_number="1"),
        record_fields(case_number="2024타경20001", address="부산"),
        record_fields(case_number="2024타경20002", minimum_sale_price=900_000_000),
        record_fields(case_number="2024타경20003"),
    ]

    result = loader.process_batch(batch, "busan")

    assert result.as_dict() == {"new": 2, "updated": 0, "duplicate": 0, "skipped": 3, "total": 5}
    assert result.balanced
    assert len(all_records(session)) == 2


def test_repeat_within_one_batch_is_duplicate(session, record_fields):
    result = AuctionRecordLoader(session).process_batch([record_fields(), record_fields()], "busan")
    assert result.new == 1
    assert result.duplicate == 1


def test_case_number_identity_treats_address_change_as_update(session, record_fields):
    loader = AuctionRecordLoader(session, identity_key="case_number")
    loader.process_batch([record_fields()], "busan")

    result = loader.process_batch([record_fields(address="부산광역시 해운대구 우동 1395")], "busan")

    assert result.updated == 1
    assert len(all_records(session)) == 1


def test_case_number_address_identity_treats_address_change_as_new(session, record_fields):
    loader = AuctionRecordLoader(session, identity_key="case_number_address")
    loader.process_batch([record_fields()], "busan")

    result = loader.process_batch([record_fields(address="부산광역시 해운대구 우동 1395")], "busan")

    assert result.new == 1
    assert len(all_records(session)) == 2


def test_changed_inactive_listing_is_reactivated(session, record_fields):
    loader = AuctionRecordLoader(session)
    loader.process_batch([record_fields()], "busan")
    [record] = all_records(session)
    record.current_status = "inactive"
    session.commit()

    result = loader.process_batch([record_fields(minimum_sale_price=350_000_000)], "busan")

    assert result.updated == 1
    session.refresh(record)
    assert record.current_status == "active"


def test_missing_hash_is_backfilled_on_duplicate(session, record_fields, add_record):
    record = add_record()
    assert record.data_hash is None

    result = AuctionRecordLoader(session).process_batch([record_fields()], "busan")

    assert result.duplicate == 1
    session.refresh(record)
    assert record.data_hash == compute_data_hash(record_fields())


def test_hash_index_prefers_lowest_id(session, add_record):
    first = add_record()
    add_record()
    index = load_hash_index(session, "case_number_address")
    assert len(index) == 1
    assert next(iter(index.values())).record_id == first.id


# ============================================================================
# FAILURES / LOCKING
# ============================================================================

def test_storage_error_skips_only_that_record(session, record_fields, monkeypatch):
    loader = AuctionRecordLoader(session)
    original_insert = loader.repository.insert

    def flaky_insert(fields, data_hash, now=None):
        if fields["case_number"] == "2024타경30002":
            raise OperationalError("INSERT INTO auction_records", {}, Exception("statement timeout"))
        return original_insert(fields, data_hash, now)

    monkeypatch.setattr(loader.repository, "insert", flaky_insert)

    result = loader.process_batch(
        [record_fields(case_number=f"2024타경3000{i}") for i in range(1, 4)],
        "busan",
    )

    assert result.as_dict() == {"new": 2, "updated": 0, "duplicate": 0, "skipped": 1, "total": 3}
    assert result.errors == 1
    assert [r.case_number for r in all_records(session)] == ["2024타경30001", "2024타경30003"]


def test_batch_waits_for_ingestion_lock(session, record_fields):
    loader = AuctionRecordLoader(session, lock_timeout_seconds=0.1)
    lock = IngestLock(session.get_bind(), timeout_seconds=1, holder="maintenance")
    lock.acquire()
    try:
        with pytest.raises(IngestLockTimeout):
            loader.process_batch([record_fields()], "busan")
    finally:
        lock.release()

    assert loader.process_batch([record_fields()], "busan").new == 1


# ============================================================================
# DATAFRAME / CSV
# ============================================================================

def test_load_from_dataframe_normalizes_raw_text(session):
    df = pd.DataFrame([
        {
            "case_number": "2024타경10234",
            "property_type": "아파트",
            "address": "부산광역시 해운대구 우동 1394",
            "appraisal_value": "5억2000만원",
            "minimum_sale_price": "416,000,000원",
            "auction_date": "2026.11.20",
            "current_status": "유찰 1회",
        },
        {
            "case_number": "",
            "address": "부산광역시 수영구 광안동 192-5",
        },
    ])

    result = AuctionRecordLoader(session).load_from_dataframe(df, "csv-import")

    assert result.as_dict() == {"new": 1, "updated": 0, "duplicate": 0, "skipped": 1, "total": 2}
    [record] = all_records(session)
    assert record.appraisal_value == 520_000_000
    assert record.failure_count == 1
    assert record.source_site == "csv-import"


def test_load_from_csv(session, tmp_path):
    path = tmp_path / "listings.csv"
    path.write_text(
        "case_number,address,appraisal_value,minimum_sale_price\n"
        "2024타경10234,부산광역시 해운대구 우동 1394,5억2000만원,\"416,000,000\"\n",
        encoding="utf-8",
    )
    result = AuctionRecordLoader(session).load_from_csv(str(path))
    assert result.new == 1
