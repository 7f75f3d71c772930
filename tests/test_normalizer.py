"""
Amount / date / category normalization tests.
"""

from datetime import date, datetime

import pytest

from src.utils.normalizer import (
    classify_property_type,
    classify_status,
    infer_tenant_status,
    normalize_raw_record,
    parse_amount,
    parse_date,
    parse_date_with_fallback,
    parse_failure_count,
    parse_time,
)


@pytest.mark.parametrize("text, expected", [
    ("3억5000만원", 350_000_000),
    ("8,500,000원", 8_500_000),
    ("", 0),
    (None, 0),
    ("5천만원", 50_000_000),
    ("1억", 100_000_000),
    ("2억 3,000만원", 230_000_000),
    ("1억2천3백만원", 123_000_000),
    ("3백만원", 3_000_000),
    ("1억 2천", 100_002_000),
    ("미정", 0),
    (12_000_000, 12_000_000),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text, expected", [
    ("2024.03.05", date(2024, 3, 5)),
    ("2024-3-5", date(2024, 3, 5)),
    ("2024/03/05 10:00", date(2024, 3, 5)),
    ("2024년 3월 5일", date(2024, 3, 5)),
    ("2024.02.30", None),
    ("추후지정", None),
    ("", None),
])
def test_parse_date(text, expected):
    assert parse_date(text) == expected


def test_parse_date_accepts_date_objects():
    assert parse_date(datetime(2025, 1, 2, 3, 4)) == date(2025, 1, 2)
    assert parse_date(date(2025, 1, 2)) == date(2025, 1, 2)


def test_date_fallback_is_flagged():
    today = date(2026, 10, 19)
    assert parse_date_with_fallback("미정", 30, today=today) == (date(2026, 11, 18), True)
    assert parse_date_with_fallback("2026.12.01", 30, today=today) == (date(2026, 12, 1), False)


def test_parse_time():
    assert parse_time("2024.03.05 10:00") == "10:00"
    assert parse_time("9:30") == "09:30"
    assert parse_time("2024.03.05") is None


@pytest.mark.parametrize("text, expected", [
    ("아파트(32평)", "apartment"),
    ("오피스텔", "officetel"),
    ("다세대주택", "multi_family"),
    ("근린상가", "commercial"),
    ("대지", "land"),
    ("apartment", "apartment"),
    ("주차장", "other"),
    ("", "other"),
])
def test_classify_property_type(text, expected):
    assert classify_property_type(text) == expected


@pytest.mark.parametrize("text, expected", [
    ("진행중", "active"),
    ("신건", "active"),
    ("매각", "sold"),
    ("유찰 2회", "failed"),
    ("취하", "cancelled"),
    ("", "active"),
    ("알수없음", "active"),
])
def test_classify_status(text, expected):
    assert classify_status(text) == expected


def test_parse_failure_count():
    assert parse_failure_count("유찰 2회") == 2
    assert parse_failure_count("3") == 3
    assert parse_failure_count("") == 0
    assert parse_failure_count("없음") == 0


def test_infer_tenant_status():
    assert infer_tenant_status("있음") == "있음"
    assert infer_tenant_status("임차인 점유 중") == "있음"
    assert infer_tenant_status("임차인 없음") == "없음"
    assert infer_tenant_status("관리비 체납") is None


def test_normalize_raw_record():
    raw = {
        "case_number": " 2024타경 10234 ",
        "court_name": "부산지방법원",
        "property_type": "아파트",
        "address": "부산광역시  해운대구 우동 1394",
        "appraisal_value": "5억2000만원",
        "minimum_sale_price": "416,000,000원",
        "auction_date": "2026.11.20 10:00",
        "current_status": "유찰 1회",
        "notes": "임차인 점유, 선순위 전세권",
    }
    scraped_at = datetime(2026, 10, 1, 9, 0)

    record = normalize_raw_record(raw, source_url="https://example.org/p1", scraped_at=scraped_at, source_site="busan")

    assert record["case_number"] == "2024타경 10234"
    assert record["item_number"] == "1"
    assert record["property_type"] == "apartment"
    assert record["address"] == "부산광역시 해운대구 우동 1394"
    assert record["appraisal_value"] == 520_000_000
    assert record["minimum_sale_price"] == 416_000_000
    assert record["auction_date"] == date(2026, 11, 20)
    assert record["auction_time"] == "10:00"
    assert record["auction_date_estimated"] is False
    assert record["failure_count"] == 1
    assert record["current_status"] == "failed"
    assert record["tenant_status"] == "있음"
    assert record["special_notes"] == "임차인 점유, 선순위 전세권"
    assert record["source_url"] == "https://example.org/p1"
    assert record["scraped_at"] == scraped_at


def test_normalize_unknown_date_without_fallback_stays_unknown():
    record = normalize_raw_record({"case_number": "2024타경1", "address": "부산 해운대구 우동", "auction_date": "추후지정"})
    assert record["auction_date"] is None
    assert record["auction_date_estimated"] is False


def test_normalize_unknown_date_with_fallback_is_estimated():
    record = normalize_raw_record(
        {"case_number": "2024타경1", "address": "부산 해운대구 우동", "auction_date": "추후지정"},
        date_fallback_days=30,
    )
    assert record["auction_date"] is not None
    assert record["auction_date_estimated"] is True
