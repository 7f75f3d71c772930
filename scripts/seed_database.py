"""
Database seed script for creating test/sample data.
Useful for development and testing.
"""

from datetime import date, timedelta
import random

from config.constants import PROPERTY_TYPES, TENANT_ABSENT, TENANT_PRESENT
from src.core.database import db, init_database
from src.loaders import AuctionRecordLoader
from src.services.scoring_engine import InvestmentScorer

REGIONS = ["해운대구", "수영구", "동래구", "부산진구", "남구", "연제구", "사하구", "기장군"]
STREETS = ["우동", "중동", "좌동", "광안동", "온천동", "전포동", "대연동", "연산동", "하단동", "기장읍"]
NOTES = [None, None, None, "임차인 점유", "선순위 전세권", "가압류 등기", "유치권 신고"]


def build_sample_record(i: int) -> dict:
    """One normalized listing with plausible Busan values."""
    appraisal = random.randint(50, 1500) * 1_000_000
    failures = random.choice([0, 0, 0, 1, 1, 2, 3])
    minimum = int(appraisal * (0.8 ** failures))

    return {
        "case_number": f"{random.randint(2023, 2025)}타경{10000 + i}",
        "item_number": "1",
        "court_name": "부산지방법원" if random.random() > 0.3 else "부산지방법원 동부지원",
        "property_type": random.choice([t for t in PROPERTY_TYPES if t != "other"]),
        "address": f"부산광역시 {random.choice(REGIONS)} {random.choice(STREETS)} {random.randint(1, 1500)}",
        "appraisal_value": appraisal,
        "minimum_sale_price": minimum,
        "bid_deposit": minimum // 10,
        "auction_date": date.today() + timedelta(days=random.randint(1, 60)),
        "auction_date_estimated": False,
        "auction_time": "10:00",
        "failure_count": failures,
        "current_status": "active",
        "tenant_status": random.choice([TENANT_PRESENT, TENANT_ABSENT, None]),
        "special_notes": random.choice(NOTES),
        "source_url": f"https://example.org/auction/list?page={i // 20 + 1}",
        "source_site": "seed",
    }


def seed_sample_listings(num_listings: int = 50, score: bool = True):
    """Create sample listings through the dedup loader, then score them."""
    print(f"Seeding {num_listings} sample listings...")

    records = [build_sample_record(i) for i in range(num_listings)]

    with db.session_scope() as session:
        result = AuctionRecordLoader(session).process_batch(records, "seed")
        print(f"✓ Batch: {result.as_dict()}")

        if score and result.changed_ids:
            summary = InvestmentScorer(session).score_records(result.changed_ids)
            print(f"✓ Scored {summary['scored']} listings ({summary['failed']} failed)")


if __name__ == "__main__":
    print("Initializing database...")
    init_database()
    seed_sample_listings()
    print("✓ Seeding complete")
