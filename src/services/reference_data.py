"""
Reference data for the scoring engine.

Region ratings, property-type ratings, risk brackets, composite weights and
the grade table are data, not code: they live as YAML under
config/reference/ and are loaded once into immutable values that get
injected into InvestmentScorer. Swapping a file changes the scoring without a
code change.
"""

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Tuple

from config.constants import (
    REFERENCE_PROPERTY_TYPES_FILE,
    REFERENCE_REGIONS_FILE,
    REFERENCE_RISK_TABLES_FILE,
    REFERENCE_SCORING_FILE,
    UNKNOWN_REGION,
)
from config.settings import get_settings
from src.utils.logger import get_logger
from src.utils.yaml_loader import YamlLoader

logger = get_logger(__name__)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


# ============================================================================
# VALUE TYPES
# ============================================================================

@dataclass(frozen=True)
class RegionRating:
    location: float
    development: float
    liquidity: float

    @property
    def average(self) -> float:
        return (self.location + self.development + self.liquidity) / 3


@dataclass(frozen=True)
class PropertyTypeRating:
    liquidity: float
    stability: float
    growth: float
    risk: float
    volatility: float


@dataclass(frozen=True)
class Bracket:
    """Applies to values strictly below `below`; None means no upper bound."""
    below: Optional[float]
    points: float
    label: str = ""


@dataclass(frozen=True)
class FloorBracket:
    """Applies to values at or above `at_least`."""
    at_least: float
    points: float


def bracket_for(brackets: Sequence[Bracket], value: float) -> Bracket:
    for bracket in brackets:
        if bracket.below is None or value < bracket.below:
            return bracket
    return brackets[-1]


def floor_points(brackets: Sequence[FloorBracket], value: float) -> float:
    for bracket in brackets:
        if value >= bracket.at_least:
            return bracket.points
    return brackets[-1].points


@dataclass(frozen=True)
class RiskTables:
    failure_points_per_failure: float
    failure_cap: float
    price_brackets: Tuple[Bracket, ...]
    time_to_auction: Tuple[Bracket, ...]
    unknown_auction_date_points: float
    location_stability: Tuple[FloorBracket, ...]
    unknown_region_points: float
    price_liquidity: Tuple[Bracket, ...]
    tenant_points: float
    keyword_points: float
    keywords: Tuple[str, ...]
    legal_failure_points_per_failure: float
    legal_failure_cap: float


@dataclass(frozen=True)
class GradeBand:
    grade: str
    min_score: float
    hold_period_months: int
    risk_level: str
    target_profit_rate: float


@dataclass(frozen=True)
class ReferenceTables:
    regions: Mapping[str, RegionRating]
    default_region: RegionRating
    property_types: Mapping[str, PropertyTypeRating]
    default_property_type: PropertyTypeRating
    risk: RiskTables

    def find_region(self, address: Optional[str]) -> str:
        """First configured region name contained in the address, else the unknown marker."""
        if address:
            for name in self.regions:
                if name in address:
                    return name
        return UNKNOWN_REGION

    def region(self, name: str) -> Optional[RegionRating]:
        return self.regions.get(name)

    def region_or_default(self, name: str) -> RegionRating:
        rating = self.regions.get(name)
        if rating is None:
            logger.debug(f"Region '{name}' not in reference table, using neutral defaults")
            return self.default_region
        return rating

    def property_type(self, name: str) -> Optional[PropertyTypeRating]:
        return self.property_types.get(name)

    def property_type_or_default(self, name: str) -> PropertyTypeRating:
        rating = self.property_types.get(name)
        if rating is None:
            logger.debug(f"Property type '{name}' not in reference table, using neutral defaults")
            return self.default_property_type
        return rating


@dataclass(frozen=True)
class ScoringConfig:
    weights: Mapping[str, float]
    adjustments: Mapping[str, float]
    profitability: Mapping[str, float]
    liquidity: Mapping[str, float]
    market_trend: Mapping[str, float]
    predictions: Mapping[str, Any]
    grades: Tuple[GradeBand, ...]
    model_version: str = "v2.0"

    def grade_for(self, score: float) -> GradeBand:
        for band in self.grades:
            if score >= band.min_score:
                return band
        return self.grades[-1]


# ============================================================================
# LOADING
# ============================================================================

def _normalized_weights(raw: Mapping[str, Any]) -> Mapping[str, float]:
    weights = {name: float(raw[name]) for name in ("profitability", "risk", "liquidity")}
    total = sum(weights.values())
    if total <= 0:
        raise ValueError(f"Composite weights must sum to a positive value, got {weights}")
    if abs(total - 1.0) > 1e-9:
        logger.warning(f"Composite weights sum to {total:.3f}, normalizing")
        weights = {name: value / total for name, value in weights.items()}
    return MappingProxyType(weights)


def _brackets(rows: Sequence[Mapping[str, Any]]) -> Tuple[Bracket, ...]:
    return tuple(
        Bracket(below=row.get("below"), points=float(row["points"]), label=str(row.get("label", "")))
        for row in rows
    )


def load_reference_tables(loader: YamlLoader) -> ReferenceTables:
    regions_doc = loader.load_file(REFERENCE_REGIONS_FILE)
    types_doc = loader.load_file(REFERENCE_PROPERTY_TYPES_FILE)
    risk_doc = loader.load_file(REFERENCE_RISK_TABLES_FILE)

    regions = {
        name: RegionRating(**{k: float(v) for k, v in values.items()})
        for name, values in (regions_doc.get("regions") or {}).items()
    }
    property_types = {
        name: PropertyTypeRating(**{k: float(v) for k, v in values.items()})
        for name, values in (types_doc.get("property_types") or {}).items()
    }

    legal = risk_doc["legal"]
    risk = RiskTables(
        failure_points_per_failure=float(risk_doc["failure"]["points_per_failure"]),
        failure_cap=float(risk_doc["failure"]["cap"]),
        price_brackets=_brackets(risk_doc["price_brackets"]),
        time_to_auction=_brackets(risk_doc["time_to_auction"]),
        unknown_auction_date_points=float(risk_doc.get("unknown_auction_date_points", 0)),
        location_stability=tuple(
            FloorBracket(at_least=float(row["at_least"]), points=float(row["points"]))
            for row in risk_doc["location_stability"]
        ),
        unknown_region_points=float(risk_doc.get("unknown_region_points", 15)),
        price_liquidity=_brackets(risk_doc["price_liquidity"]),
        tenant_points=float(legal["tenant_points"]),
        keyword_points=float(legal["keyword_points"]),
        keywords=tuple(legal["keywords"]),
        legal_failure_points_per_failure=float(legal["failure_points_per_failure"]),
        legal_failure_cap=float(legal["failure_cap"]),
    )

    return ReferenceTables(
        regions=MappingProxyType(regions),
        default_region=RegionRating(**{k: float(v) for k, v in regions_doc["default"].items()}),
        property_types=MappingProxyType(property_types),
        default_property_type=PropertyTypeRating(**{k: float(v) for k, v in types_doc["default"].items()}),
        risk=risk,
    )


def load_scoring_config(loader: YamlLoader, model_version: str = "v2.0") -> ScoringConfig:
    doc = loader.load_file(REFERENCE_SCORING_FILE)

    grades = tuple(
        sorted(
            (
                GradeBand(
                    grade=str(row["grade"]),
                    min_score=float(row["min_score"]),
                    hold_period_months=int(row["hold_period_months"]),
                    risk_level=str(row["risk_level"]),
                    target_profit_rate=float(row["target_profit_rate"]),
                )
                for row in doc["grades"]
            ),
            key=lambda band: band.min_score,
            reverse=True,
        )
    )

    return ScoringConfig(
        weights=_normalized_weights(doc["weights"]),
        adjustments=_freeze(doc["adjustments"]),
        profitability=_freeze(doc["profitability"]),
        liquidity=_freeze(doc["liquidity"]),
        market_trend=_freeze(doc["market_trend"]),
        predictions=_freeze(doc["predictions"]),
        grades=grades,
        model_version=model_version,
    )


def resolve_reference_dir(reference_dir: Optional[str] = None) -> Path:
    """Configured directory, resolved against the project root when relative."""
    path = Path(reference_dir or get_settings().reference_data_dir)
    if not path.is_absolute() and not path.exists():
        path = Path(__file__).parent.parent.parent / path
    return path


def load_reference_data(reference_dir: Optional[str] = None) -> Tuple[ReferenceTables, ScoringConfig]:
    """
    Load both reference tables and scoring configuration from one directory.

    Example:
        >>> reference, config = load_reference_data()
        >>> reference.find_region("부산광역시 해운대구 우동 1394")
        '해운대구'
    """
    directory = resolve_reference_dir(reference_dir)
    loader = YamlLoader(str(directory))
    reference = load_reference_tables(loader)
    config = load_scoring_config(loader, model_version=get_settings().model_version)
    logger.info(
        f"Loaded reference data from {directory}: {len(reference.regions)} regions, "
        f"{len(reference.property_types)} property types, {len(config.grades)} grades"
    )
    return reference, config
