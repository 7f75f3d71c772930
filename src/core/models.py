"""
Database models for the Auction Registry Intelligence Platform.

Two tables: auction_records holds one row per listing as last seen on the
registry, analysis_results holds the scoring output for a listing (latest
only, or a history when configured).
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ============================================================================
# 1. LISTINGS
# ============================================================================

class AuctionRecord(Base):
    """
    One property listed for judicial auction.

    Created on first successful extraction, then touched or updated by every
    later scrape that sees it again. Flipped to 'inactive' by the stale sweep,
    deleted only by duplicate compaction.
    """
    __tablename__ = "auction_records"

    # Primary Key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Identity
    case_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    item_number: Mapped[str] = mapped_column(String(20), nullable=False, default="1")

    # Descriptive
    court_name: Mapped[Optional[str]] = mapped_column(String(100))
    property_type: Mapped[str] = mapped_column(String(30), nullable=False, default="other")
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    building_name: Mapped[Optional[str]] = mapped_column(String(200))

    # Financial (integer won)
    appraisal_value: Mapped[Optional[int]] = mapped_column(BigInteger)
    minimum_sale_price: Mapped[Optional[int]] = mapped_column(BigInteger)
    bid_deposit: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Scheduling
    auction_date: Mapped[Optional[date]] = mapped_column(Date)
    auction_time: Mapped[Optional[str]] = mapped_column(String(10))
    auction_date_estimated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Status
    current_status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    tenant_status: Mapped[Optional[str]] = mapped_column(String(10))
    special_notes: Mapped[Optional[str]] = mapped_column(Text)

    # Provenance
    source_url: Mapped[Optional[str]] = mapped_column(String(1000))
    source_site: Mapped[Optional[str]] = mapped_column(String(100))
    scraped_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    data_hash: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    check_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Audit Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    analysis_results: Mapped[List["AnalysisResult"]] = relationship(
        "AnalysisResult",
        back_populates="auction_record",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AnalysisResult.id",
    )

    __table_args__ = (
        Index("idx_auction_case_address", "case_number", "address"),
        Index("idx_auction_status", "current_status"),
        Index("idx_auction_last_checked", "last_checked_at"),
        Index("idx_auction_type", "property_type"),
        CheckConstraint(
            "property_type IN ('apartment', 'officetel', 'detached_house', 'multi_family', 'row_house', "
            "'commercial', 'land', 'factory', 'warehouse', 'other')",
            name="check_property_type",
        ),
        CheckConstraint(
            "current_status IN ('active', 'sold', 'failed', 'cancelled', 'inactive')",
            name="check_current_status",
        ),
        CheckConstraint("failure_count >= 0", name="check_failure_count"),
        CheckConstraint(
            "appraisal_value IS NULL OR minimum_sale_price IS NULL OR appraisal_value = 0 "
            "OR minimum_sale_price <= appraisal_value",
            name="check_minimum_within_appraisal",
        ),
    )

    @property
    def latest_analysis(self) -> Optional["AnalysisResult"]:
        return self.analysis_results[-1] if self.analysis_results else None

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    def __repr__(self):
        return f"<AuctionRecord(id={self.id}, case_number='{self.case_number}', status='{self.current_status}')>"


# ============================================================================
# 2. SCORING OUTPUT
# ============================================================================

class AnalysisResult(Base):
    """
    Output of one scoring run over an AuctionRecord.

    All bounded fields are clamped by the scoring engine before they reach
    this table; the check constraints catch anything that slips through.
    risk_score and legal_risk_score are stored higher = riskier.
    """
    __tablename__ = "analysis_results"

    # Primary Key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Foreign Key
    auction_record_id: Mapped[int] = mapped_column(
        ForeignKey("auction_records.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Profitability detail
    discount_rate: Mapped[Optional[float]] = mapped_column(Float)
    estimated_market_price: Mapped[Optional[int]] = mapped_column(BigInteger)
    market_comparison_rate: Mapped[Optional[float]] = mapped_column(Float)
    roi_1year: Mapped[Optional[float]] = mapped_column(Float)
    roi_3year: Mapped[Optional[float]] = mapped_column(Float)

    # Scores (0-100)
    investment_score: Mapped[int] = mapped_column(Integer, nullable=False)
    profitability_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    liquidity_score: Mapped[int] = mapped_column(Integer, nullable=False)
    location_score: Mapped[int] = mapped_column(Integer, nullable=False)
    legal_risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    market_trend_score: Mapped[int] = mapped_column(Integer, nullable=False)

    # Market context
    area_average_price: Mapped[Optional[int]] = mapped_column(BigInteger)
    area_transaction_count: Mapped[Optional[int]] = mapped_column(Integer)
    area_price_trend: Mapped[Optional[float]] = mapped_column(Float)
    comparable_properties_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Predictions
    success_probability: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_final_price: Mapped[Optional[int]] = mapped_column(BigInteger)
    predicted_sale_rate: Mapped[Optional[float]] = mapped_column(Float)
    estimated_competition_level: Mapped[int] = mapped_column(Integer, nullable=False)
    price_volatility_index: Mapped[float] = mapped_column(Float, nullable=False)

    # Recommendation
    investment_grade: Mapped[str] = mapped_column(String(1), nullable=False)
    hold_period_months: Mapped[Optional[int]] = mapped_column(Integer)
    risk_level: Mapped[Optional[str]] = mapped_column(String(10))
    target_profit_rate: Mapped[Optional[float]] = mapped_column(Float)

    # Model metadata
    model_version: Mapped[Optional[str]] = mapped_column(String(20))
    model_confidence: Mapped[Optional[float]] = mapped_column(Float)
    analysis_features: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType)
    analysis_duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    auction_record: Mapped["AuctionRecord"] = relationship("AuctionRecord", back_populates="analysis_results")

    __table_args__ = (
        Index("idx_analysis_score", "investment_score"),
        Index("idx_analysis_grade", "investment_grade"),
        CheckConstraint("investment_score BETWEEN 0 AND 100", name="check_investment_score"),
        CheckConstraint("profitability_score BETWEEN 0 AND 100", name="check_profitability_score"),
        CheckConstraint("risk_score BETWEEN 0 AND 100", name="check_risk_score"),
        CheckConstraint("liquidity_score BETWEEN 0 AND 100", name="check_liquidity_score"),
        CheckConstraint("location_score BETWEEN 0 AND 100", name="check_location_score"),
        CheckConstraint("legal_risk_score BETWEEN 0 AND 100", name="check_legal_risk_score"),
        CheckConstraint("market_trend_score BETWEEN 0 AND 100", name="check_market_trend_score"),
        CheckConstraint("success_probability BETWEEN 0 AND 100", name="check_success_probability"),
        CheckConstraint("estimated_competition_level BETWEEN 1 AND 5", name="check_competition_level"),
        CheckConstraint("investment_grade IN ('S', 'A', 'B', 'C', 'D')", name="check_investment_grade"),
    )

    def __repr__(self):
        return (
            f"<AnalysisResult(id={self.id}, auction_record_id={self.auction_record_id}, "
            f"score={self.investment_score}, grade='{self.investment_grade}')>"
        )
