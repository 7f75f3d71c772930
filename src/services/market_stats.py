"""
Comparable-market aggregates for the scoring engine.

Liquidity and market-trend scoring look at other listings of the same type in
the same region over a short window (90 days by default):
    - sold volume          recent 'sold' listings, feeds the liquidity bonus
    - average price        mean minimum sale price
    - price trend          linear-fit slope of minimum price over the window, as % of the mean
    - volatility           spread of minimum/appraisal rates, in percentage points
    - success rate         sold / (sold + failed), in percent

Listings whose region is not in the reference table get the configured
neutral defaults instead of a query.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config.constants import COMPARABLE_PRICE_BAND, MARKET_WINDOW_DAYS, UNKNOWN_REGION
from src.core.models import AuctionRecord, utcnow
from src.utils.logger import get_logger

logger = get_logger(__name__)

_MIN_TREND_POINTS = 3


@dataclass(frozen=True)
class MarketSnapshot:
    average_price: Optional[int]
    listing_count: int
    sold_count: int
    price_trend: float
    volatility: float
    success_rate: float


class MarketStatsProvider:
    """Per-run cache of (region, property type) aggregates."""

    def __init__(
        self,
        session: Session,
        defaults: Mapping[str, float],
        window_days: int = MARKET_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ):
        self.session = session
        self.defaults = defaults
        self.window_days = window_days
        self.now = now or utcnow()
        self._cache: Dict[Tuple[str, str], MarketSnapshot] = {}

    @property
    def since(self) -> datetime:
        return self.now - timedelta(days=self.window_days)

    def default_snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            average_price=None,
            listing_count=0,
            sold_count=0,
            price_trend=float(self.defaults.get("default_price_trend", 0.0)),
            volatility=float(self.defaults.get("default_volatility", 5.0)),
            success_rate=float(self.defaults.get("default_success_rate", 60.0)),
        )

    def snapshot(self, region: str, property_type: str) -> MarketSnapshot:
        key = (region, property_type)
        if key not in self._cache:
            self._cache[key] = self._compute(region, property_type)
        return self._cache[key]

    def _frame(self, region: str, property_type: str) -> pd.DataFrame:
        stmt = select(
            AuctionRecord.minimum_sale_price,
            AuctionRecord.appraisal_value,
            AuctionRecord.current_status,
            AuctionRecord.scraped_at,
            AuctionRecord.updated_at,
        ).where(
            AuctionRecord.property_type == property_type,
            AuctionRecord.address.contains(region, autoescape=True),
            AuctionRecord.updated_at >= self.since,
        )
        rows = self.session.execute(stmt).all()
        return pd.DataFrame(
            rows,
            columns=["minimum_sale_price", "appraisal_value", "current_status", "scraped_at", "updated_at"],
        )

    def _compute(self, region: str, property_type: str) -> MarketSnapshot:
        if region == UNKNOWN_REGION:
            return self.default_snapshot()

        df = self._frame(region, property_type)
        defaults = self.default_snapshot()
        if df.empty:
            logger.debug(f"No comparable listings for {region}/{property_type}, using defaults")
            return defaults

        sold = int((df["current_status"] == "sold").sum())
        failed = int((df["current_status"] == "failed").sum())
        success_rate = sold / (sold + failed) * 100 if sold + failed else defaults.success_rate

        prices = df["minimum_sale_price"].dropna().astype(float)
        prices = prices[prices > 0]
        average_price = int(round(prices.mean())) if not prices.empty else None

        price_trend = defaults.price_trend
        priced = df[df["minimum_sale_price"].fillna(0) > 0]
        if len(priced) >= _MIN_TREND_POINTS and priced["scraped_at"].nunique() > 1:
            days = (pd.to_datetime(priced["scraped_at"]) - pd.Timestamp(self.since)).dt.total_seconds() / 86400
            values = priced["minimum_sale_price"].astype(float).to_numpy()
            slope = float(np.polyfit(days.to_numpy(dtype=float), values, 1)[0])
            mean_price = float(np.mean(values))
            if mean_price > 0:
                price_trend = slope * self.window_days / mean_price * 100

        volatility = defaults.volatility
        rated = df[(df["appraisal_value"].fillna(0) > 0) & (df["minimum_sale_price"].fillna(0) > 0)]
        if len(rated) >= _MIN_TREND_POINTS:
            rates = rated["minimum_sale_price"].astype(float) / rated["appraisal_value"].astype(float) * 100
            volatility = float(np.std(rates.to_numpy()))

        snapshot = MarketSnapshot(
            average_price=average_price,
            listing_count=len(df),
            sold_count=sold,
            price_trend=round(price_trend, 4),
            volatility=round(volatility, 4),
            success_rate=round(success_rate, 4),
        )
        logger.debug(f"Market snapshot {region}/{property_type}: {snapshot}")
        return snapshot

    def comparable_count(self, record: AuctionRecord, region: str) -> int:
        """Active listings of the same type and region within ±20% of this minimum price."""
        if region == UNKNOWN_REGION or not record.minimum_sale_price:
            return 0

        low = record.minimum_sale_price * (1 - COMPARABLE_PRICE_BAND)
        high = record.minimum_sale_price * (1 + COMPARABLE_PRICE_BAND)
        stmt = select(func.count(AuctionRecord.id)).where(
            AuctionRecord.property_type == record.property_type,
            AuctionRecord.address.contains(region, autoescape=True),
            AuctionRecord.minimum_sale_price.between(low, high),
            AuctionRecord.current_status == "active",
            AuctionRecord.id != record.id,
        )
        return int(self.session.scalar(stmt) or 0)
