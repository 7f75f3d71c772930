"""
Record validator tests.
"""

from src.loaders.validator import RecordValidator


def test_complete_record_is_valid(record_fields):
    assert RecordValidator().validate(record_fields()) == []


def test_short_identity_and_address_are_rejected(record_fields):
    problems = RecordValidator().validate(record_fields(case_number="12", address="부산"))
    assert len(problems) == 2


def test_custom_minimum_lengths(record_fields):
    validator = RecordValidator(min_case_number_length=10, min_address_length=3)
    assert not validator.is_valid(record_fields(case_number="2024타경1"))
    assert validator.is_valid(record_fields(case_number="2024타경10234", address="해운대"))


def test_unknown_enums_are_rejected(record_fields):
    validator = RecordValidator()
    assert not validator.is_valid(record_fields(property_type="castle"))
    assert not validator.is_valid(record_fields(current_status="pending"))


def test_negative_failure_count_is_rejected(record_fields):
    assert not RecordValidator().is_valid(record_fields(failure_count=-1))


def test_minimum_above_appraisal_is_rejected(record_fields):
    validator = RecordValidator()
    assert not validator.is_valid(record_fields(appraisal_value=100_000_000, minimum_sale_price=120_000_000))
    # an unknown appraisal (0) does not bound the minimum
    assert validator.is_valid(record_fields(appraisal_value=0, minimum_sale_price=120_000_000))
