"""
Shared fixtures: an in-memory SQLite database per test and listing factories.
"""

from datetime import date, datetime

import pytest

from src.core.database import build_engine, build_session_factory
from src.core.models import AuctionRecord, Base
from src.services.price_model import SaleRateModel
from src.services.reference_data import load_reference_data


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = build_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture(scope="session")
def reference_data():
    return load_reference_data()


@pytest.fixture(scope="session")
def sale_rate_model():
    return SaleRateModel.from_reference_dir()


def make_record_fields(**overrides):
    """A normalized listing as the loader expects it."""
    fields = {
        "case_number": "2024타경10234",
        "item_number": "1",
        "court_name": "부산지방법원",
        "property_type": "apartment",
        "address": "부산광역시 해운대구 우동 1394 센텀파크 101동 1203호",
        "building_name": None,
        "appraisal_value": 520_000_000,
        "minimum_sale_price": 416_000_000,
        "bid_deposit": 41_600_000,
        "auction_date": date(2026, 11, 20),
        "auction_date_estimated": False,
        "auction_time": "10:00",
        "failure_count": 1,
        "current_status": "active",
        "tenant_status": None,
        "special_notes": None,
        "source_url": "https://example.org/auction/list?page=1",
        "source_site": "busan-district-court",
        "scraped_at": datetime(2024, 10, 1, 9, 0, 0),
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def record_fields():
    return make_record_fields


@pytest.fixture
def add_record(session):
    """Insert a listing directly, bypassing the loader."""

    def _add(**overrides):
        fields = make_record_fields(**overrides)
        record = AuctionRecord(**fields)
        session.add(record)
        session.commit()
        return record

    return _add
