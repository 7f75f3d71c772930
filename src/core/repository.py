"""
Persistence gateway for listings and their analyses.

Everything that reads or writes auction_records / analysis_results row by row
goes through AuctionRepository, so the dedup engine, the scoring engine and
maintenance never build ORM objects by hand.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from src.core.models import AnalysisResult, AuctionRecord, utcnow

# Columns a later scrape may overwrite on an existing listing
MUTABLE_FIELDS = (
    "item_number",
    "court_name",
    "property_type",
    "address",
    "building_name",
    "appraisal_value",
    "minimum_sale_price",
    "bid_deposit",
    "auction_date",
    "auction_time",
    "auction_date_estimated",
    "failure_count",
    "current_status",
    "tenant_status",
    "special_notes",
    "source_url",
    "source_site",
)

ANALYSIS_FIELDS = tuple(
    column.name
    for column in AnalysisResult.__table__.columns
    if column.name not in ("id", "auction_record_id", "analyzed_at")
)


class AuctionRepository:
    """Thin read/write interface over one SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    # ========================================================================
    # LISTINGS
    # ========================================================================

    def get(self, record_id: int) -> Optional[AuctionRecord]:
        return self.session.get(AuctionRecord, record_id)

    def insert(self, fields: Dict[str, Any], data_hash: str, now: Optional[datetime] = None) -> AuctionRecord:
        now = now or utcnow()
        record = AuctionRecord(
            case_number=fields["case_number"],
            address=fields["address"],
            **{name: fields[name] for name in MUTABLE_FIELDS if name in fields and name != "address"},
        )
        record.scraped_at = fields.get("scraped_at") or now
        record.data_hash = data_hash
        record.last_checked_at = now
        record.check_count = 1
        record.updated_count = 0
        self.session.add(record)
        self.session.flush()
        return record

    def apply_update(
        self,
        record: AuctionRecord,
        fields: Dict[str, Any],
        data_hash: str,
        now: Optional[datetime] = None,
    ) -> AuctionRecord:
        """Overwrite mutable fields after a content change. Always reactivates."""
        now = now or utcnow()
        for name in MUTABLE_FIELDS:
            if name in fields:
                setattr(record, name, fields[name])
        if record.current_status == "inactive":
            record.current_status = "active"
        record.data_hash = data_hash
        record.scraped_at = now
        record.last_checked_at = now
        record.check_count = (record.check_count or 0) + 1
        record.updated_count = (record.updated_count or 0) + 1
        self.session.flush()
        return record

    def touch(self, record: AuctionRecord, now: Optional[datetime] = None) -> AuctionRecord:
        record.last_checked_at = now or utcnow()
        record.check_count = (record.check_count or 0) + 1
        self.session.flush()
        return record

    def iter_active(self) -> Iterable[AuctionRecord]:
        stmt = select(AuctionRecord).where(AuctionRecord.current_status == "active").order_by(AuctionRecord.id)
        return self.session.scalars(stmt)

    def summary_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals used for the post-batch / maintenance summary."""
        now = now or utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        row = self.session.execute(
            select(
                func.count(AuctionRecord.id),
                func.sum(case((AuctionRecord.current_status == "active", 1), else_=0)),
                func.sum(case((AuctionRecord.current_status == "inactive", 1), else_=0)),
                func.sum(case((AuctionRecord.last_checked_at >= start_of_day, 1), else_=0)),
                func.avg(AuctionRecord.check_count),
                func.avg(AuctionRecord.updated_count),
            )
        ).one()

        return {
            "total_records": int(row[0] or 0),
            "active_records": int(row[1] or 0),
            "inactive_records": int(row[2] or 0),
            "checked_today": int(row[3] or 0),
            "avg_check_count": round(float(row[4] or 0), 2),
            "avg_updated_count": round(float(row[5] or 0), 2),
        }

    # ========================================================================
    # ANALYSES
    # ========================================================================

    def latest_analysis(self, record_id: int) -> Optional[AnalysisResult]:
        stmt = (
            select(AnalysisResult)
            .where(AnalysisResult.auction_record_id == record_id)
            .order_by(AnalysisResult.id.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def save_analysis(
        self,
        record_id: int,
        values: Dict[str, Any],
        retain_history: bool = False,
    ) -> AnalysisResult:
        """
        Upsert the record's analysis (latest wins), or append when history is retained.
        """
        payload = {name: values[name] for name in ANALYSIS_FIELDS if name in values}

        existing = None if retain_history else self.latest_analysis(record_id)
        if existing is None:
            result = AnalysisResult(auction_record_id=record_id, **payload)
            self.session.add(result)
        else:
            result = existing
            for name, value in payload.items():
                setattr(result, name, value)
        result.analyzed_at = utcnow()

        self.session.flush()
        return result

    def pending_scoring_ids(self, limit: Optional[int] = None) -> List[int]:
        """
        Active listings with no analysis yet, or updated since their latest analysis.
        """
        latest = (
            select(
                AnalysisResult.auction_record_id.label("record_id"),
                func.max(AnalysisResult.analyzed_at).label("analyzed_at"),
            )
            .group_by(AnalysisResult.auction_record_id)
            .subquery()
        )
        stmt = (
            select(AuctionRecord.id)
            .outerjoin(latest, latest.c.record_id == AuctionRecord.id)
            .where(AuctionRecord.current_status == "active")
            .where(or_(latest.c.analyzed_at.is_(None), AuctionRecord.scraped_at > latest.c.analyzed_at))
            .order_by(AuctionRecord.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))
