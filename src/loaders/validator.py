"""
Record validator.

Rejects normalized listings that fail minimal shape checks before they reach
the dedup engine. Rejection is never fatal: the caller counts the record as
skipped and moves on.
"""

from typing import Any, List, Mapping

from config.constants import PROPERTY_TYPES, RECORD_STATUSES


class RecordValidator:
    """Minimal shape/length invariants for a normalized record."""

    def __init__(self, min_case_number_length: int = 3, min_address_length: int = 5):
        self.min_case_number_length = min_case_number_length
        self.min_address_length = min_address_length

    def validate(self, record: Mapping[str, Any]) -> List[str]:
        """Return a list of problems; an empty list means the record is usable."""
        problems: List[str] = []

        case_number = str(record.get("case_number") or "").strip()
        if len(case_number) < self.min_case_number_length:
            problems.append(f"case_number too short: '{case_number}'")

        address = str(record.get("address") or "").strip()
        if len(address) < self.min_address_length:
            problems.append(f"address too short: '{address}'")

        if record.get("property_type", "other") not in PROPERTY_TYPES:
            problems.append(f"unknown property_type: {record.get('property_type')}")

        if record.get("current_status", "active") not in RECORD_STATUSES:
            problems.append(f"unknown current_status: {record.get('current_status')}")

        failure_count = record.get("failure_count", 0)
        if not isinstance(failure_count, int) or isinstance(failure_count, bool) or failure_count < 0:
            problems.append(f"invalid failure_count: {failure_count!r}")

        appraisal = record.get("appraisal_value") or 0
        minimum = record.get("minimum_sale_price") or 0
        for name, value in (("appraisal_value", appraisal), ("minimum_sale_price", minimum)):
            if not isinstance(value, int) or value < 0:
                problems.append(f"invalid {name}: {value!r}")

        if isinstance(appraisal, int) and isinstance(minimum, int) and appraisal > 0 and minimum > appraisal:
            problems.append(f"minimum_sale_price {minimum:,} exceeds appraisal_value {appraisal:,}")

        return problems

    def is_valid(self, record: Mapping[str, Any]) -> bool:
        return not self.validate(record)
