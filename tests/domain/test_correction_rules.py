"""
Tests for fiscal_kernel.domain.correction_rules.

Normalization, length bounds measured after normalization, and sequence
rules (positive, strictly increasing, bounded).
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from fiscal_kernel.domain.correction_rules import (
    LENGTH,
    MAX_SEQUENCE,
    REQUIRED,
    SEQUENCE,
    SEQUENCE_LIMIT,
    CorrectionEventValidator,
    normalize_correction_text,
    validate_correction_text,
    validate_sequence,
)
from fiscal_config.schema import CorrectionConfig


class TestNormalization:
    def test_line_breaks_and_runs_collapse(self):
        text = "  Correção de erro\r\n\tno CFOP   do item 3  \n"
        assert normalize_correction_text(text) == "Correção de erro no CFOP do item 3"

    def test_none_becomes_empty(self):
        assert normalize_correction_text(None) == ""

    @given(st.text())
    def test_idempotent(self, text):
        once = normalize_correction_text(text)
        assert normalize_correction_text(once) == once

    @given(st.text())
    def test_no_edge_or_double_whitespace(self, text):
        result = normalize_correction_text(text)
        assert result == result.strip()
        assert "  " not in result
        assert "\n" not in result


class TestTextLength:
    def test_fourteen_characters_rejected(self):
        check = validate_correction_text("a" * 14)
        assert not check
        assert check.violation.code == LENGTH

    def test_fifteen_characters_accepted(self):
        assert validate_correction_text("a" * 15)

    def test_thousand_characters_accepted(self):
        assert validate_correction_text("a" * 1000)

    def test_thousand_and_one_rejected(self):
        check = validate_correction_text("a" * 1001)
        assert check.violation.code == LENGTH

    def test_length_measured_after_normalization(self):
        # 14 visible characters padded with whitespace
        assert not validate_correction_text("   abcdefg\n\n\n     hijklm   ")

    def test_blank_text_is_required(self):
        check = validate_correction_text(" \n\t ")
        assert check.violation.code == REQUIRED

    @given(st.integers(min_value=15, max_value=1000))
    def test_any_length_in_range_accepted(self, n):
        assert validate_correction_text("x" * n).ok


class TestSequence:
    def test_first_sequence(self):
        assert validate_sequence(1, None)

    @pytest.mark.parametrize("value", [0, -1, "1", 1.0, None, True])
    def test_non_positive_or_non_integer_rejected(self, value):
        check = validate_sequence(value, None)
        assert check.violation.code == SEQUENCE

    def test_must_exceed_prior_max(self):
        assert validate_sequence(3, 2)
        assert validate_sequence(2, 2).violation.code == SEQUENCE
        assert validate_sequence(1, 2).violation.code == SEQUENCE

    def test_limit(self):
        assert validate_sequence(MAX_SEQUENCE, None)
        assert validate_sequence(MAX_SEQUENCE + 1, None).violation.code == SEQUENCE_LIMIT


class TestValidator:
    def test_text_checked_before_sequence(self):
        check = CorrectionEventValidator().check("short", 0, None)
        assert check.violation.code == LENGTH

    def test_from_config(self):
        validator = CorrectionEventValidator.from_config(
            CorrectionConfig(min_text_length=5, max_text_length=10, max_sequence=2)
        )
        assert validator.check("12345", 2, 1)
        assert validator.check("12345", 3, 2).violation.code == SEQUENCE_LIMIT
        assert validator.validate_text("12345678901").violation.code == LENGTH
