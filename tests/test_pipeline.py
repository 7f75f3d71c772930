"""
End-to-end ingestion pipeline tests: pages -> extraction -> dedup -> scoring.
"""

import json
from datetime import date, datetime

import pytest
from sqlalchemy import func, select

import src.services.ingestion_pipeline as ingestion_pipeline
from config.settings import AppSettings
from src.core.models import AnalysisResult, AuctionRecord
from src.services.ingestion_pipeline import IngestionPipeline, RawPage
from src.services.scoring_engine import InvestmentScorer
from src.utils.scraper_db_helper import pages_from_json

HEADER = ["사건번호", "법원", "용도", "소재지", "감정가", "최저가", "매각기일", "진행상태"]

ROWS = [
    ["2024타경10234", "부산지방법원", "아파트", "부산광역시 해운대구 우동 1394", "5억2000만원", "416,000,000", "2026.11.20", "유찰 1회"],
    ["2024타경10877", "부산지방법원", "오피스텔", "부산광역시 수영구 광안동 192-5", "2억", "160,000,000", "2026.11.20", "신건"],
    ["2024타경11002", "부산지방법원", "다세대", "부산광역시 사하구 하단동 600-12", "1억3000만원", "91,000,000", "2026.11.27", "진행"],
]

CAPTURED_AT = datetime(2026, 10, 18, 9, 0, 0)


def listing_page(rows=ROWS, url="https://example.org/auction/list?page=1"):
    return RawPage.from_dict({
        "source_url": url,
        "captured_at": CAPTURED_AT.isoformat(),
        "tables": [
            {"header": ["메뉴", "검색"], "rows": [["홈", "로그인"], ["공지", "자료실"]]},
            {"header": HEADER, "rows": rows},
        ],
    })


def layout_page():
    return RawPage.from_dict({
        "source_url": "https://example.org/notice",
        "tables": [{"header": ["메뉴", "검색"], "rows": [["홈", "로그인"]]}],
    })


@pytest.fixture
def pipeline(session, reference_data, sale_rate_model):
    reference, config = reference_data
    scorer = InvestmentScorer(session, reference, config, sale_rate_model, today=date(2026, 10, 19))
    return IngestionPipeline(session, scorer=scorer, workers=2)


def test_raw_page_from_dict():
    page = listing_page()
    assert page.source_url == "https://example.org/auction/list?page=1"
    assert page.captured_at == CAPTURED_AT
    assert len(page.tables) == 2


def test_first_run_stores_and_scores_every_listing(session, pipeline):
    summary = pipeline.run([listing_page()], "busan-district-court")

    assert summary.extracted == 3
    assert summary.batch.as_dict() == {"new": 3, "updated": 0, "duplicate": 0, "skipped": 0, "total": 3}
    assert summary.scoring == {"scored": 3, "failed": 0, "total": 3}
    assert session.scalar(select(func.count(AnalysisResult.id))) == 3

    record = session.scalars(select(AuctionRecord).where(AuctionRecord.case_number == "2024타경10234")).one()
    assert record.property_type == "apartment"
    assert record.appraisal_value == 520_000_000
    assert record.failure_count == 1
    assert record.source_site == "busan-district-court"
    assert record.source_url == "https://example.org/auction/list?page=1"


def test_repeat_run_is_all_duplicates_and_scores_nothing(session, pipeline):
    pipeline.run([listing_page()], "busan-district-court")
    summary = pipeline.run([listing_page()], "busan-district-court")

    assert summary.batch.duplicate == 3
    assert summary.scoring["total"] == 0
    assert all(r.check_count == 2 for r in session.scalars(select(AuctionRecord)))


def test_changed_listing_is_one_update_and_rescored(session, pipeline):
    pipeline.run([listing_page()], "busan-district-court")

    changed = [list(row) for row in ROWS]
    changed[0][5] = "332,800,000"
    changed[0][7] = "유찰 2회"
    summary = pipeline.run([listing_page(changed)], "busan-district-court")

    assert summary.batch.as_dict() == {"new": 0, "updated": 1, "duplicate": 2, "skipped": 0, "total": 3}
    assert summary.scoring["scored"] == 1

    record = session.scalars(select(AuctionRecord).where(AuctionRecord.case_number == "2024타경10234")).one()
    assert record.updated_count == 1
    assert record.minimum_sale_price == 332_800_000
    assert record.failure_count == 2
    # latest analysis is overwritten, not appended
    assert session.scalar(select(func.count(AnalysisResult.id))) == 3


def test_page_without_listing_table_is_counted(session, pipeline):
    summary = pipeline.run([layout_page(), listing_page()], "busan-district-court")

    assert summary.pages == 2
    assert summary.pages_without_table == 1
    assert summary.batch.new == 3


def test_pipeline_without_scoring(session):
    summary = IngestionPipeline(session, score=False, workers=1).run([listing_page()], "busan")

    assert summary.batch.new == 3
    assert summary.scoring["total"] == 0
    assert session.scalar(select(func.count(AnalysisResult.id))) == 0


def test_pages_from_json_accepts_both_shapes(tmp_path):
    page = {"source_url": "https://example.org/a", "tables": [{"header": HEADER, "rows": ROWS}]}
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([page], ensure_ascii=False), encoding="utf-8")
    as_object = tmp_path / "object.json"
    as_object.write_text(json.dumps({"pages": [page, page]}, ensure_ascii=False), encoding="utf-8")

    assert len(pages_from_json(as_list)) == 1
    assert len(pages_from_json(as_object)) == 2


def test_extractor_uses_configured_minimum_lengths(session, monkeypatch):
    strict = AppSettings(min_case_number_length=20, min_address_length=8)
    monkeypatch.setattr(ingestion_pipeline, "get_settings", lambda: strict)

    pipeline = IngestionPipeline(session, score=False, workers=1)
    summary = pipeline.run([listing_page()], "busan")

    assert pipeline.extractor.config.min_case_number_length == 20
    assert pipeline.extractor.config.min_address_length == 8
    assert summary.extracted == 0
    assert summary.discarded_rows == 3
