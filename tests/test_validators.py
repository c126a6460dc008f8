# WORKFLOW: Tests for tariff-code candidate validation.
# Used by: CI, development testing
# Test scenarios:
# 1. Code normalization (separators, parent-code reconstruction, key derivation)
# 2. Hard rejections (missing code/label, too short, chapter 00)
# 3. Soft warnings that never reject (rate range, units, label shape)

import pytest

from etl.validators import (
    derive_keys,
    normalize_code,
    validate_candidate,
    validate_candidates,
    validate_hs_code,
)
from pipeline.models import CandidateRecord


def make(code, label="Live horses for breeding purposes", **fields):
    return CandidateRecord(raw_code=code, label=label, **fields)


class TestNormalization:

    def test_separators_are_stripped_and_padded(self):
        record, violations = validate_candidate(make("0101.21.00"))
        assert record.primary_key == "0101210000"
        assert record.extended_key is None
        assert violations == []

    def test_parent_code_rebuilds_partial_code(self):
        assert normalize_code("15 00", parent_code="0301.91") == "0301911500"

    def test_parent_code_ignored_for_full_code(self):
        assert normalize_code("0303.14.00.00", parent_code="0301.91") == "0303140000"

    def test_short_parent_is_not_used(self):
        assert normalize_code("15", parent_code="03") == "15"

    def test_extended_key_from_long_code(self):
        record, _ = validate_candidate(make("0101.21.00.00.1234"))
        assert record.primary_key == "0101210000"
        assert record.extended_key == "01012100001234"

    def test_extended_key_is_padded(self):
        assert derive_keys("010121000012") == ("0101210000", "01012100001200")

    def test_label_whitespace_collapsed(self):
        record, _ = validate_candidate(make("0101210000", label="  Live\n horses   for breeding "))
        assert record.label == "Live horses for breeding"


class TestRejections:

    def test_chapter_zero_rejected(self):
        record, violations = validate_candidate(make("0000123456"))
        assert record is None
        assert "chapter" in violations[0].lower()

    def test_chapter_99_accepted(self):
        record, _ = validate_candidate(make("9950123456"))
        assert record is not None
        assert record.chapter == "99"

    def test_too_few_digits_rejected(self):
        record, violations = validate_candidate(make("12345"))
        assert record is None
        assert "too short" in violations[0]

    def test_missing_code_rejected(self):
        record, _ = validate_candidate(make(None))
        assert record is None

    def test_missing_label_rejected(self):
        record, _ = validate_candidate(make("0101210000", label="   "))
        assert record is None

    @pytest.mark.parametrize("code,expected", [
        ("0101210000", True),
        ("9950123456", True),
        ("0000123456", False),
        ("010121", False),
        ("01012100AB", False),
        ("", False),
    ])
    def test_validate_hs_code(self, code, expected):
        assert validate_hs_code(code) is expected


class TestSoftWarnings:

    def test_rate_out_of_range_is_kept_with_warning(self):
        record, violations = validate_candidate(make("0101210000", numeric_rate="150"))
        assert record.numeric_rate == 150.0
        assert any("outside" in v for v in violations)

    def test_unparseable_rate_is_dropped_with_warning(self):
        record, violations = validate_candidate(make("0101210000", numeric_rate="see note 3"))
        assert record.numeric_rate is None
        assert any("unparseable rate" in v for v in violations)

    def test_exempt_rate_is_zero(self):
        record, violations = validate_candidate(make("0101210000", numeric_rate="ex"))
        assert record.numeric_rate == 0.0
        assert violations == []

    def test_non_standard_unit(self):
        record, violations = validate_candidate(make("0101210000", unit="boxes"))
        assert record.unit == "boxes"
        assert violations == ["0101210000: non-standard unit 'boxes'"]

    def test_digit_only_short_label(self):
        record, violations = validate_candidate(make("0101210000", label="12"))
        assert record is not None
        assert len(violations) == 2

    def test_long_label_truncated(self):
        record, violations = validate_candidate(make("0101210000", label="a" * 1200))
        assert len(record.label) == 1000
        assert any("truncated" in v for v in violations)


def test_validate_candidates_counts_and_order():
    candidates = [
        make("0101210000"),
        make("12"),
        make("0000123456"),
        make("0202.30.00", numeric_rate="300"),
    ]

    records, rejected, warnings = validate_candidates(candidates)

    assert [r.primary_key for r in records] == ["0101210000", "0202300000"]
    assert rejected == 2
    assert len(warnings) == 1
