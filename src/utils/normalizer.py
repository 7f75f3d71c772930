"""
Amount / Date / Type normalization for registry listings.

Scraped cells arrive as free text in the registry's own locale ("3억5000만원",
"2024.03.05", "아파트(32평)"). The helpers here turn that text into the
canonical values stored on AuctionRecord. All functions are pure: no I/O, no
clock reads except where a caller explicitly asks for the date fallback.
"""

import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from config.constants import (
    AMOUNT_UNITS,
    DATE_PATTERN,
    FAILURE_COUNT_PATTERN,
    PROPERTY_TYPE_ALIASES,
    PROPERTY_TYPES,
    RECORD_STATUSES,
    STATUS_ALIASES,
    TENANT_ABSENT,
    TENANT_PRESENT,
    TIME_PATTERN,
)
from src.core.models import utcnow

_AMOUNT_TOKEN = re.compile(r"(\d+(?:\.\d+)?)\s*([" + "".join(AMOUNT_UNITS) + r"]*)")
_GROUP_UNIT = AMOUNT_UNITS["만"]
_FIRST_INTEGER = re.compile(r"\d+")
_DATE = re.compile(DATE_PATTERN)
_KOREAN_DATE = re.compile(r"(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일")
_TIME = re.compile(TIME_PATTERN)
_FAILURE_COUNT = re.compile(FAILURE_COUNT_PATTERN)
_WHITESPACE = re.compile(r"\s+")


def is_blank(value: Any) -> bool:
    """True for None, NaN/NaT and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def clean_text(value: Any) -> str:
    """Collapse internal whitespace and trim; blanks become ''."""
    if is_blank(value):
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


# ============================================================================
# AMOUNTS
# ============================================================================

def parse_amount(text: Any) -> int:
    """
    Parse a currency amount into integer won.

    Compound magnitude units are multiplied out and summed
    ("3억5000만" -> 350,000,000, "5천만원" -> 50,000,000,
    "1억2천3백만원" -> 123,000,000). Without any unit the
    first integer left after removing thousands separators is used
    ("8,500,000원" -> 8,500,000). No digits at all yields 0.
    """
    if is_blank(text):
        return 0
    if isinstance(text, bool):
        return 0
    if isinstance(text, (int, float)):
        return max(int(round(text)), 0)

    cleaned = str(text).replace(",", "")

    # 천/백 groups stay pending until the next 만/억 scales them
    total = 0.0
    pending = 0.0
    matched_unit = False
    for number, units in _AMOUNT_TOKEN.findall(cleaned):
        if not units:
            continue
        value = float(number)
        closed = False
        for unit in units:
            factor = AMOUNT_UNITS[unit]
            if factor < _GROUP_UNIT:
                value *= factor
                closed = False
            else:
                value = (pending + value) * factor
                pending = 0.0
                closed = True
        if closed:
            total += value
        else:
            pending += value
        matched_unit = True

    if matched_unit:
        return int(round(total + pending))

    match = _FIRST_INTEGER.search(cleaned)
    return int(match.group(0)) if match else 0


# ============================================================================
# DATES
# ============================================================================

def parse_date(text: Any) -> Optional[date]:
    """
    Parse YYYY-MM-DD, YYYY.MM.DD, YYYY/MM/DD (or 2024년 3월 5일).

    Returns None when the text holds no valid date; the caller decides whether
    an unknown date is acceptable.
    """
    if is_blank(text):
        return None
    if isinstance(text, datetime):
        return text.date()
    if isinstance(text, date):
        return text

    value = str(text)
    match = _DATE.search(value) or _KOREAN_DATE.search(value)
    if not match:
        return None

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_with_fallback(
    text: Any,
    fallback_days: int = 30,
    today: Optional[date] = None,
) -> Tuple[date, bool]:
    """
    Parse a date, substituting today + fallback_days when parsing fails.

    Returns:
        (date, used_fallback) so callers can flag the value as estimated
    """
    parsed = parse_date(text)
    if parsed is not None:
        return parsed, False
    base = today or date.today()
    return base + timedelta(days=fallback_days), True


def parse_time(text: Any) -> Optional[str]:
    """Pull an HH:MM time out of a date/time cell."""
    if is_blank(text):
        return None
    match = _TIME.search(str(text))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


# ============================================================================
# CATEGORIES
# ============================================================================

def classify_property_type(text: Any) -> str:
    """Map free-text property categories onto the fixed enum; defaults to 'other'."""
    value = clean_text(text)
    if not value:
        return "other"
    lowered = value.lower().replace("-", "_")
    if lowered in PROPERTY_TYPES:
        return lowered
    for alias, property_type in PROPERTY_TYPE_ALIASES:
        if alias in value:
            return property_type
    return "other"


def classify_status(text: Any) -> str:
    """Map registry status wording onto the status enum; blank/unknown is 'active'."""
    value = clean_text(text)
    if not value:
        return "active"
    if value.lower() in RECORD_STATUSES:
        return value.lower()
    for alias, status in STATUS_ALIASES:
        if alias in value:
            return status
    return "active"


def parse_failure_count(text: Any) -> int:
    """Read '유찰 2회' / '2' style failure counts; anything unreadable is 0."""
    if is_blank(text):
        return 0
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return int(text)
    value = str(text)
    match = _FAILURE_COUNT.search(value)
    if match:
        return int(match.group(1))
    match = _FIRST_INTEGER.search(value)
    return int(match.group(0)) if match else 0


def infer_tenant_status(text: Any) -> Optional[str]:
    """Derive tenant occupancy from an explicit field or from the notes text."""
    value = clean_text(text)
    if not value:
        return None
    if value in (TENANT_PRESENT, TENANT_ABSENT):
        return value
    if "임차인 없음" in value or "임차인없음" in value:
        return TENANT_ABSENT
    if "임차인" in value or "점유" in value:
        return TENANT_PRESENT
    return None


# ============================================================================
# RECORD NORMALIZATION
# ============================================================================

def normalize_raw_record(
    raw: Dict[str, Any],
    source_url: Optional[str] = None,
    scraped_at: Optional[datetime] = None,
    source_site: Optional[str] = None,
    date_fallback_days: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Turn one raw extracted row (role -> cell text) into a normalized record.

    When date_fallback_days is set and the auction date cannot be parsed, the
    date becomes today + N days and auction_date_estimated is True. Otherwise
    an unparseable date is stored as None.
    """
    date_text = raw.get("auction_date")
    if date_fallback_days is not None:
        auction_date, estimated = parse_date_with_fallback(date_text, date_fallback_days)
    else:
        auction_date, estimated = parse_date(date_text), False

    status_text = raw.get("current_status")
    failure_text = raw.get("failure_count")
    if is_blank(failure_text) and "유찰" in clean_text(status_text):
        failure_text = status_text

    notes = clean_text(raw.get("notes") or raw.get("special_notes")) or None
    tenant_status = infer_tenant_status(raw.get("tenant_status")) or infer_tenant_status(notes)

    bid_deposit = raw.get("bid_deposit")

    return {
        "case_number": clean_text(raw.get("case_number")),
        "item_number": clean_text(raw.get("item_number")) or "1",
        "court_name": clean_text(raw.get("court_name")) or None,
        "property_type": classify_property_type(raw.get("property_type")),
        "address": clean_text(raw.get("address")),
        "building_name": clean_text(raw.get("building_name")) or None,
        "appraisal_value": parse_amount(raw.get("appraisal_value")),
        "minimum_sale_price": parse_amount(raw.get("minimum_sale_price")),
        "bid_deposit": None if is_blank(bid_deposit) else parse_amount(bid_deposit),
        "auction_date": auction_date,
        "auction_date_estimated": estimated,
        "auction_time": clean_text(raw.get("auction_time")) or parse_time(date_text),
        "failure_count": parse_failure_count(failure_text),
        "current_status": classify_status(status_text),
        "tenant_status": tenant_status,
        "special_notes": notes,
        "source_url": source_url or (clean_text(raw.get("source_url")) or None),
        "source_site": source_site,
        "scraped_at": scraped_at or utcnow(),
    }
