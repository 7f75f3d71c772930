"""
Application-wide constants for the Auction Registry Intelligence Platform.

This module centralizes the static tables used by the extractor, the
normalizer and the ingestion pipeline. Anything an operator is expected to
tune per deployment (region ratings, risk brackets, composite weights, the
regression seed) lives under config/reference/ instead and is loaded at
startup by src.services.reference_data.

Author: Auction Registry Intelligence Platform
"""

from pathlib import Path

# =============================================================================
# DIRECTORY PATHS
# =============================================================================

LOGS_DIR = Path("logs")

REFERENCE_REGIONS_FILE = "regions.yaml"
REFERENCE_PROPERTY_TYPES_FILE = "property_types.yaml"
REFERENCE_RISK_TABLES_FILE = "risk_tables.yaml"
REFERENCE_SCORING_FILE = "scoring.yaml"
REFERENCE_REGRESSION_SEED_FILE = "regression_seed.csv"

# =============================================================================
# HTTP / OUTPUT
# =============================================================================

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
REQUEST_TIMEOUT_DEFAULT = 30  # seconds
PAGE_ENCODING_FALLBACKS = ("utf-8", "euc-kr", "cp949")

OUTPUT_SEPARATOR = "=" * 80

# =============================================================================
# TABLE SELECTION - auction-record likelihood
# =============================================================================

# Registry case numbers look like "2024타경12345"
CASE_NUMBER_PATTERN = r"\d{4}\s*타경\s*\d+"

# (name, points, tokens, pattern) - a table earns the points once if ANY
# token or the pattern appears in its full text.
TABLE_SCORE_RULES = (
    ("case_number", 5.0, ("사건번호", "물건번호"), CASE_NUMBER_PATTERN),
    ("court", 3.0, ("법원",), None),
    ("price", 4.0, ("감정가", "최저가"), None),
    ("address", 3.0, ("주소", "소재"), None),
    ("auction_date", 2.0, ("매각기일",), None),
)

ROW_COUNT_BONUS_PER_ROW = 0.1
MIN_TABLE_ROWS = 3
# A table must score strictly above this to be selected at all
MIN_TABLE_SCORE = 3.0

# =============================================================================
# COLUMN ROLE INFERENCE
# =============================================================================

# Ordered: the first group whose keyword appears in a header claims it.
# item_number is listed ahead of case_number so "물건번호" never lands in the
# case-number column.
COLUMN_KEYWORDS = (
    ("item_number", ("물건번호",)),
    ("case_number", ("사건번호", "사건", "번호")),
    ("court_name", ("담당법원", "법원")),
    ("property_type", ("물건종류", "용도", "종류", "구분")),
    ("address", ("소재지", "주소", "위치", "소재")),
    ("appraisal_value", ("감정가", "평가액", "감정")),
    ("minimum_sale_price", ("최저매각가격", "최저가", "매각가격", "최저")),
    ("auction_date", ("매각기일", "경매일", "기일", "일시")),
    ("current_status", ("진행상태", "상태", "진행")),
    ("failure_count", ("유찰횟수", "유찰")),
    ("notes", ("특이사항", "비고")),
)

# Column index used when no header claimed the role
COLUMN_FALLBACK_POSITIONS = {
    "case_number": 0,
    "court_name": 1,
    "property_type": 2,
    "address": 3,
    "appraisal_value": 4,
    "minimum_sale_price": 5,
    "auction_date": 6,
    "current_status": 7,
}

# =============================================================================
# NORMALIZATION TABLES
# =============================================================================

AMOUNT_UNITS = {
    "억": 100_000_000,
    "만": 10_000,
    "천": 1_000,
    "백": 100,
}

PROPERTY_TYPES = (
    "apartment",
    "officetel",
    "detached_house",
    "multi_family",
    "row_house",
    "commercial",
    "land",
    "factory",
    "warehouse",
    "other",
)

# Ordered alias table, first match wins
PROPERTY_TYPE_ALIASES = (
    ("아파트", "apartment"),
    ("오피스텔", "officetel"),
    ("단독", "detached_house"),
    ("다가구", "multi_family"),
    ("다세대", "multi_family"),
    ("연립", "row_house"),
    ("빌라", "row_house"),
    ("상가", "commercial"),
    ("점포", "commercial"),
    ("근린", "commercial"),
    ("토지", "land"),
    ("대지", "land"),
    ("임야", "land"),
    ("전답", "land"),
    ("공장", "factory"),
    ("창고", "warehouse"),
)

RECORD_STATUSES = ("active", "sold", "failed", "cancelled", "inactive")

STATUS_ALIASES = (
    ("진행", "active"),
    ("신건", "active"),
    ("매각", "sold"),
    ("낙찰", "sold"),
    ("유찰", "failed"),
    ("취하", "cancelled"),
    ("취소", "cancelled"),
    ("기각", "cancelled"),
    ("정지", "cancelled"),
    ("종결", "inactive"),
)

TENANT_PRESENT = "있음"
TENANT_ABSENT = "없음"

DATE_PATTERN = r"(\d{4})\s*[./-]\s*(\d{1,2})\s*[./-]\s*(\d{1,2})"
TIME_PATTERN = r"(\d{1,2}):(\d{2})"
FAILURE_COUNT_PATTERN = r"(\d+)\s*회"

# =============================================================================
# DEDUPLICATION
# =============================================================================

# Fields that participate in the change-detection hash
HASH_FIELDS = (
    "case_number",
    "address",
    "appraisal_value",
    "minimum_sale_price",
    "auction_date",
    "current_status",
)

IDENTITY_KEY_FIELDS = {
    "case_number": ("case_number",),
    "case_number_address": ("case_number", "address"),
}

# Advisory lock id guarding the single-writer ingestion path (PostgreSQL)
INGEST_ADVISORY_LOCK_ID = 74_201_001

# =============================================================================
# SCORING
# =============================================================================

UNKNOWN_REGION = "기타"
NEUTRAL_SCORE = 50.0
MARKET_WINDOW_DAYS = 90
COMPARABLE_PRICE_BAND = 0.2
