"""
Investment scoring service.

Scores auction listings for investment attractiveness and writes one
AnalysisResult per listing. All tables, brackets and weights come from
config/reference/ (see src.services.reference_data); this module only holds
the arithmetic.

ANALYSIS LIFECYCLE:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
AnalysisResult has a Many:1 relationship with AuctionRecord:
  • A listing is 'unscored' until its first run, 'scored' afterwards
  • Rescoring UPDATES the latest analysis in place (latest wins)
  • With RETAIN_ANALYSIS_HISTORY=true every run appends a new row instead
  • Each listing is scored in its own transaction; one failure never
    blocks the rest of the run

SUB-SCORES (each 0-100):
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

1. Profitability
   - Discount rate (appraisal vs minimum) x 0.8, capped at 40
   - 1-year ROI x 1.5, capped at 35
       market price = minimum x (1 + region liquidity / 200)
       ROI = (appreciated market price - minimum + 4% rent) / minimum
   - Market price vs minimum (%) x 0.5, capped at 25

2. Risk (higher = riskier; inverted in the composite)
   - Failure count: 10 pts per failed round, capped at 30
   - Property type risk rating
   - Price bracket (cheap and very expensive listings are riskier)
   - Days to auction: <7 → 15, <14 → 10, <30 → 5, else 0 (unknown date → 0)
   - Location stability: the better the region's location rating, the fewer points

3. Liquidity
   - Type liquidity x 0.40 + region liquidity x 0.35 + price curve x 0.25
   - Bonus up to 10 from the region's recent sold volume

4. Location       mean of the region's location / development / liquidity ratings
5. Legal risk     tenant occupied 25, each risk keyword in notes 10, failures 5 each (max 20)
6. Market trend   50 ± 90-day price trend, success-rate tilt, volatility penalty

COMPOSITE:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  0.4 x profitability + 0.3 x (100 - risk) + 0.3 x liquidity
  + (market trend - 50) x 0.2      (±10)
  + (location - 50) x 0.1          (±5)
  clamped to 0-100 and rounded

GRADES:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
• S: 85+ (hold 12 months, LOW risk, 25% target)
• A: 70-84 (18 months, LOW, 20%)
• B: 55-69 (24 months, MEDIUM, 15%)
• C: 40-54 (36 months, MEDIUM, 10%)
• D: 0-39 (48 months, HIGH, 5%)

PREDICTIONS:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
• Sale rate from the seeded regression (appraisal + failure count),
  ± 0.1 pt per composite point around 50, floored 1 pt above the
  minimum-price rate
• Final price = appraisal x rate, never below the minimum sale price
• Success probability 5-95, competition level 1-5, volatility index 1-10
"""

import time
from datetime import date
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.constants import NEUTRAL_SCORE, TENANT_PRESENT
from config.settings import get_settings
from src.core.models import AnalysisResult, AuctionRecord, utcnow
from src.core.repository import AuctionRepository
from src.services.market_stats import MarketSnapshot, MarketStatsProvider
from src.services.price_model import SaleRateModel
from src.services.reference_data import (
    ReferenceTables,
    ScoringConfig,
    bracket_for,
    floor_points,
    load_reference_data,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class InvestmentScorer:
    """Calculator for listing investment scores."""

    def __init__(
        self,
        session: Session,
        reference: Optional[ReferenceTables] = None,
        config: Optional[ScoringConfig] = None,
        model: Optional[SaleRateModel] = None,
        retain_history: Optional[bool] = None,
        today: Optional[date] = None,
    ):
        """
        Initialize the scorer.

        Args:
            session: SQLAlchemy database session
            reference: Region / type / risk tables (loaded from the reference dir if omitted)
            config: Weights, grade table and prediction constants (same)
            model: Fitted sale-rate regression (fitted from the seed file if omitted)
            retain_history: Append analyses instead of overwriting the latest
            today: Reference date for days-to-auction (defaults to the current UTC date)
        """
        self.session = session
        if reference is None or config is None:
            loaded_reference, loaded_config = load_reference_data()
            reference = reference or loaded_reference
            config = config or loaded_config
        self.reference = reference
        self.config = config
        self.model = model or SaleRateModel.from_reference_dir()
        self.retain_history = (
            retain_history if retain_history is not None else get_settings().retain_analysis_history
        )
        self.today = today
        self.repository = AuctionRepository(session)
        self.market = MarketStatsProvider(session, config.market_trend)

    def _today(self) -> date:
        return self.today or utcnow().date()

    # ========================================================================
    # PROFITABILITY
    # ========================================================================

    def calculate_discount_rate(self, record: AuctionRecord) -> float:
        """Percent below appraisal at which the minimum sale price sits."""
        appraisal = record.appraisal_value or 0
        minimum = record.minimum_sale_price or 0
        if appraisal <= 0:
            return 0.0
        return (appraisal - minimum) / appraisal * 100

    def estimate_market_price(self, record: AuctionRecord, region: str) -> int:
        divisor = float(self.config.profitability["market_price_liquidity_divisor"])
        liquidity = self.reference.region_or_default(region).liquidity
        return int(round((record.minimum_sale_price or 0) * (1 + liquidity / divisor)))

    def calculate_appreciation(self, record: AuctionRecord, region: str) -> float:
        """Expected yearly appreciation from region development and type growth."""
        p = self.config.profitability
        appreciation = float(p["base_appreciation"])

        region_rating = self.reference.region(region)
        if region_rating is not None:
            appreciation += region_rating.development / 100 * float(p["development_appreciation"])

        type_rating = self.reference.property_type(record.property_type)
        if type_rating is not None:
            appreciation += type_rating.growth / 100 * float(p["growth_appreciation"])

        return appreciation + float(p["market_appreciation"])

    def calculate_roi(self, minimum: int, market_price: int, years: int, appreciation: float) -> float:
        """Average yearly return in percent on buying at the minimum sale price."""
        if not minimum:
            return 0.0
        future_value = market_price * (1 + appreciation) ** years
        rental = market_price * float(self.config.profitability["rental_yield"])
        total_return = (future_value - minimum) + rental * years
        return total_return / minimum / years * 100

    def calculate_profitability(self, record: AuctionRecord, region: str) -> Dict[str, Any]:
        p = self.config.profitability
        minimum = record.minimum_sale_price or 0

        discount_rate = self.calculate_discount_rate(record)
        market_price = self.estimate_market_price(record, region)
        appreciation = self.calculate_appreciation(record, region)
        roi_1year = self.calculate_roi(minimum, market_price, 1, float(p["base_appreciation"]))
        roi_3year = self.calculate_roi(minimum, market_price, 3, appreciation)
        market_ratio = (market_price - minimum) / minimum * 100 if minimum else 0.0

        discount_points = clamp(discount_rate * float(p["discount_factor"]), 0, float(p["discount_cap"]))
        roi_points = clamp(roi_1year * float(p["roi_factor"]), 0, float(p["roi_cap"]))
        ratio_points = clamp(market_ratio * float(p["market_ratio_factor"]), 0, float(p["market_ratio_cap"]))
        score = clamp(discount_points + roi_points + ratio_points)

        logger.debug(f"[Profitability] discount {discount_rate:.1f}% = {discount_points:.1f} pts")
        logger.debug(f"[Profitability] 1y ROI {roi_1year:.1f}% = {roi_points:.1f} pts")
        logger.debug(f"[Profitability] market ratio {market_ratio:.1f}% = {ratio_points:.1f} pts")

        return {
            "score": score,
            "discount_rate": round(discount_rate, 2),
            "estimated_market_price": market_price,
            "market_comparison_rate": round(minimum / market_price * 100, 2) if market_price else 0.0,
            "roi_1year": round(roi_1year, 2),
            "roi_3year": round(roi_3year, 2),
            "appreciation": appreciation,
        }

    # ========================================================================
    # RISK
    # ========================================================================

    def days_until_auction(self, record: AuctionRecord) -> Optional[int]:
        if record.auction_date is None:
            return None
        return (record.auction_date - self._today()).days

    def calculate_risk(self, record: AuctionRecord, region: str) -> float:
        """Risk sub-score, higher = riskier."""
        risk = self.reference.risk
        failures = record.failure_count or 0

        failure_points = min(failures * risk.failure_points_per_failure, risk.failure_cap)
        type_points = self.reference.property_type_or_default(record.property_type).risk
        price_points = bracket_for(risk.price_brackets, record.minimum_sale_price or 0).points

        days = self.days_until_auction(record)
        if days is None:
            time_points = risk.unknown_auction_date_points
        else:
            time_points = bracket_for(risk.time_to_auction, days).points

        region_rating = self.reference.region(region)
        if region_rating is None:
            location_points = risk.unknown_region_points
        else:
            location_points = floor_points(risk.location_stability, region_rating.location)

        logger.debug(f"[Risk] failures ({failures}) = {failure_points:.0f} pts")
        logger.debug(f"[Risk] type ({record.property_type}) = {type_points:.0f} pts")
        logger.debug(f"[Risk] price bracket = {price_points:.0f} pts")
        logger.debug(f"[Risk] days to auction ({days}) = {time_points:.0f} pts")
        logger.debug(f"[Risk] location ({region}) = {location_points:.0f} pts")

        return clamp(failure_points + type_points + price_points + time_points + location_points)

    # ========================================================================
    # LIQUIDITY / LOCATION / LEGAL / MARKET
    # ========================================================================

    def calculate_liquidity(self, record: AuctionRecord, region: str, snapshot: MarketSnapshot) -> float:
        l = self.config.liquidity
        type_liquidity = self.reference.property_type_or_default(record.property_type).liquidity
        region_liquidity = self.reference.region_or_default(region).liquidity
        price_liquidity = bracket_for(self.reference.risk.price_liquidity, record.minimum_sale_price or 0).points

        volume = min(snapshot.sold_count * float(l["sold_volume_points_per_sale"]), 100)
        volume_bonus = min(volume / float(l["volume_divisor"]), float(l["volume_bonus_cap"]))

        score = (
            type_liquidity * float(l["type_weight"])
            + region_liquidity * float(l["region_weight"])
            + price_liquidity * float(l["price_weight"])
            + volume_bonus
        )
        logger.debug(
            f"[Liquidity] type {type_liquidity:.0f}, region {region_liquidity:.0f}, "
            f"price {price_liquidity:.0f}, volume bonus {volume_bonus:.1f} = {score:.1f} pts"
        )
        return clamp(score)

    def calculate_location(self, region: str) -> float:
        rating = self.reference.region(region)
        if rating is None:
            logger.debug(f"[Location] {region} unrated = {NEUTRAL_SCORE:.0f} pts")
            return NEUTRAL_SCORE
        logger.debug(f"[Location] {region} = {rating.average:.1f} pts")
        return clamp(rating.average)

    def calculate_legal_risk(self, record: AuctionRecord) -> float:
        """Legal-risk sub-score, higher = riskier."""
        risk = self.reference.risk
        points = 0.0

        if record.tenant_status == TENANT_PRESENT:
            points += risk.tenant_points

        notes = record.special_notes or ""
        hits = [keyword for keyword in risk.keywords if keyword in notes]
        points += len(hits) * risk.keyword_points

        points += min((record.failure_count or 0) * risk.legal_failure_points_per_failure, risk.legal_failure_cap)

        if hits:
            logger.debug(f"[Legal] keywords in notes: {', '.join(hits)}")
        logger.debug(f"[Legal] tenant={record.tenant_status} = {points:.0f} pts")
        return clamp(points)

    def calculate_market_trend(self, snapshot: MarketSnapshot) -> float:
        m = self.config.market_trend
        score = NEUTRAL_SCORE

        if snapshot.price_trend > 0:
            score += min(snapshot.price_trend * float(m["rising_factor"]), float(m["rising_cap"]))
        else:
            score += max(snapshot.price_trend * float(m["falling_factor"]), float(m["falling_floor"]))

        score += (snapshot.success_rate - NEUTRAL_SCORE) * float(m["success_rate_factor"])
        score -= min(snapshot.volatility, float(m["volatility_cap"]))

        logger.debug(
            f"[Market] trend {snapshot.price_trend:.1f}%, success {snapshot.success_rate:.0f}%, "
            f"volatility {snapshot.volatility:.1f} = {score:.1f} pts"
        )
        return clamp(score)

    # ========================================================================
    # COMPOSITE / PREDICTIONS
    # ========================================================================

    def calculate_composite(
        self,
        profitability: float,
        risk: float,
        liquidity: float,
        market_trend: float,
        location: float,
    ) -> int:
        w = self.config.weights
        a = self.config.adjustments
        total = (
            profitability * w["profitability"]
            + (100 - risk) * w["risk"]
            + liquidity * w["liquidity"]
            + (market_trend - NEUTRAL_SCORE) * float(a["market_trend_factor"])
            + (location - NEUTRAL_SCORE) * float(a["location_factor"])
        )
        return int(round(clamp(total)))

    def predict_success_probability(self, record: AuctionRecord, score: int, discount_rate: float) -> float:
        p = self.config.predictions
        probability = (
            float(p["success_base"])
            + (score - NEUTRAL_SCORE) * float(p["success_score_factor"])
            - (record.failure_count or 0) * float(p["success_failure_penalty"])
            + (discount_rate - float(p["success_discount_pivot"])) * float(p["success_discount_factor"])
        )
        return round(clamp(probability, float(p["success_min"]), float(p["success_max"])), 1)

    def predict_competition_level(self, record: AuctionRecord, score: int) -> int:
        p = self.config.predictions
        bands = p["competition_bands"]
        level = 1 + sum(1 for threshold in bands if score >= threshold)
        level -= record.failure_count or 0
        return int(clamp(level, int(p["competition_min"]), int(p["competition_max"])))

    def predict_volatility(self, record: AuctionRecord) -> float:
        p = self.config.predictions
        volatility = (
            self.reference.property_type_or_default(record.property_type).volatility
            + (record.failure_count or 0) * float(p["volatility_failure_factor"])
        )
        return round(clamp(volatility, float(p["volatility_min"]), float(p["volatility_max"])), 1)

    def predict_final_price(self, record: AuctionRecord, score: int) -> Dict[str, Any]:
        """
        Predicted sale rate (% of appraisal) and final price.

        The rate never drops within 1 point of the minimum-price rate and the
        price never drops below the minimum sale price.
        """
        p = self.config.predictions
        appraisal = record.appraisal_value or 0
        minimum = record.minimum_sale_price or 0

        if appraisal <= 0:
            return {"predicted_sale_rate": None, "estimated_final_price": minimum or None}

        rate = self.model.predict_rate(appraisal, record.failure_count or 0)
        rate += (score - NEUTRAL_SCORE) * float(p["score_premium_per_point"])
        rate = max(rate, minimum / appraisal * 100 + float(p["minimum_rate_margin"]))

        price = max(int(round(appraisal * rate / 100)), minimum)
        logger.debug(f"[Prediction] sale rate {rate:.1f}% → {price:,} won")
        return {"predicted_sale_rate": round(rate, 2), "estimated_final_price": price}

    def build_features(self, record: AuctionRecord, region: str) -> Dict[str, Any]:
        return {
            "property_type": record.property_type,
            "region": region,
            "price_range": bracket_for(self.reference.risk.price_brackets, record.minimum_sale_price or 0).label,
            "failure_count": record.failure_count or 0,
            "days_to_auction": self.days_until_auction(record),
            "auction_date_estimated": bool(record.auction_date_estimated),
            "has_special_notes": bool(record.special_notes),
            "has_tenant": record.tenant_status == TENANT_PRESENT,
        }

    # ========================================================================
    # RECORD SCORING
    # ========================================================================

    def calculate_record_score(self, record: AuctionRecord) -> Dict[str, Any]:
        """
        Calculate the full analysis for one listing without persisting it.

        Args:
            record: AuctionRecord to score

        Returns:
            Dictionary keyed by AnalysisResult column names
        """
        started = time.perf_counter()
        region = self.reference.find_region(record.address)

        logger.info(f"\n{'='*80}")
        logger.info(f"SCORING: {record.case_number} ({record.item_number}) - {record.address}")
        logger.info(f"Type: {record.property_type} | Region: {region} | Failures: {record.failure_count}")
        logger.info(f"{'='*80}")

        snapshot = self.market.snapshot(region, record.property_type)

        profit = self.calculate_profitability(record, region)
        risk_score = self.calculate_risk(record, region)
        liquidity_score = self.calculate_liquidity(record, region, snapshot)
        location_score = self.calculate_location(region)
        legal_score = self.calculate_legal_risk(record)
        market_score = self.calculate_market_trend(snapshot)

        total = self.calculate_composite(
            profit["score"], risk_score, liquidity_score, market_score, location_score
        )
        band = self.config.grade_for(total)
        price = self.predict_final_price(record, total)

        logger.info(f"\n{'─'*80}")
        logger.info(f"FINAL SCORE BREAKDOWN:")
        logger.info(f"  Profitability:          {profit['score']:>3.0f} / 100")
        logger.info(f"  Risk (higher=riskier):  {risk_score:>3.0f} / 100")
        logger.info(f"  Liquidity:              {liquidity_score:>3.0f} / 100")
        logger.info(f"  Location:               {location_score:>3.0f} / 100")
        logger.info(f"  Legal Risk:             {legal_score:>3.0f} / 100")
        logger.info(f"  Market Trend:           {market_score:>3.0f} / 100")
        logger.info(f"  {'─'*40}")
        logger.info(f"  INVESTMENT SCORE:       {total:>3.0f} / 100")
        logger.info(f"  Grade:                  {band.grade} ({band.risk_level})")
        logger.info(f"{'='*80}\n")

        return {
            "auction_record_id": record.id,
            "discount_rate": profit["discount_rate"],
            "estimated_market_price": profit["estimated_market_price"],
            "market_comparison_rate": profit["market_comparison_rate"],
            "roi_1year": profit["roi_1year"],
            "roi_3year": profit["roi_3year"],
            "investment_score": total,
            "profitability_score": int(round(profit["score"])),
            "risk_score": int(round(risk_score)),
            "liquidity_score": int(round(liquidity_score)),
            "location_score": int(round(location_score)),
            "legal_risk_score": int(round(legal_score)),
            "market_trend_score": int(round(market_score)),
            "area_average_price": snapshot.average_price,
            "area_transaction_count": snapshot.listing_count,
            "area_price_trend": snapshot.price_trend,
            "comparable_properties_count": self.market.comparable_count(record, region),
            "success_probability": self.predict_success_probability(record, total, profit["discount_rate"]),
            "estimated_final_price": price["estimated_final_price"],
            "predicted_sale_rate": price["predicted_sale_rate"],
            "estimated_competition_level": self.predict_competition_level(record, total),
            "price_volatility_index": self.predict_volatility(record),
            "investment_grade": band.grade,
            "hold_period_months": band.hold_period_months,
            "risk_level": band.risk_level,
            "target_profit_rate": band.target_profit_rate,
            "model_version": self.config.model_version,
            "model_confidence": round(self.model.confidence, 4),
            "analysis_features": self.build_features(record, region),
            "analysis_duration_ms": int((time.perf_counter() - started) * 1000),
        }

    def save_score_to_database(self, score_data: Dict[str, Any]) -> AnalysisResult:
        """
        Save a calculated analysis, overwriting the listing's latest one
        unless history retention is configured.
        """
        result = self.repository.save_analysis(
            score_data["auction_record_id"], score_data, retain_history=self.retain_history
        )
        logger.debug(
            f"Saved analysis for record {score_data['auction_record_id']}: "
            f"{result.investment_score} ({result.investment_grade})"
        )
        return result

    def score_record(self, record_id: int) -> AnalysisResult:
        """
        Score one listing and commit its analysis.

        Raises:
            LookupError: If no listing has this id
            SQLAlchemyError: After rolling back, if any read or write failed
        """
        try:
            record = self.repository.get(record_id)
            if record is None:
                raise LookupError(f"Auction record {record_id} not found")

            score_data = self.calculate_record_score(record)
            with self.session.begin_nested():
                result = self.save_score_to_database(score_data)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return result

    def score_records(self, record_ids: Iterable[int]) -> Dict[str, int]:
        """
        Score a set of listings, one transaction each.

        Returns:
            {'scored': n, 'failed': n, 'total': n}
        """
        record_ids = list(record_ids)
        self.market = MarketStatsProvider(self.session, self.config.market_trend)
        scored = 0
        failed = 0

        logger.info(f"Scoring {len(record_ids)} auction records...")
        for record_id in record_ids:
            try:
                self.score_record(record_id)
                scored += 1
            except (LookupError, SQLAlchemyError, ValueError) as e:
                failed += 1
                logger.error(f"Error scoring auction record {record_id}: {e}")

        logger.info(f"Scoring complete: {scored} scored, {failed} failed of {len(record_ids)}")
        return {"scored": scored, "failed": failed, "total": len(record_ids)}

    def score_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Score active listings with no analysis yet or updated since their last one."""
        record_ids = self.repository.pending_scoring_ids(limit)
        logger.info(f"Found {len(record_ids)} listings awaiting scoring")
        return self.score_records(record_ids)


def main():
    """
    Entry point for cron execution.
    Scores every unscored or changed listing and saves the results.
    """
    import sys
    from datetime import datetime

    from src.core.database import get_db_context
    from src.utils.logger import setup_logging

    setup_logging()

    logger.info("=" * 60)
    logger.info("Investment Scoring Engine - Scheduled Run")
    logger.info(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=" * 60)

    try:
        with get_db_context() as session:
            scorer = InvestmentScorer(session)
            summary = scorer.score_pending()
    except Exception as e:
        logger.error(f"Scoring run failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info(f"Done: {summary['scored']} scored, {summary['failed']} failed")
    sys.exit(0 if summary["failed"] == 0 else 1)


if __name__ == "__main__":
    main()
