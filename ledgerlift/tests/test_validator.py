"""Tests for the structural validator."""

import pytest

from ledgerlift.models import TransactionCandidate, TransactionType
from ledgerlift.services.validator import validate_candidate, validate_transaction, validate_transactions


def make_candidate(**overrides) -> TransactionCandidate:
    values = {
        "date": "2025-08-01",
        "narration": "UPI/Swiggy/98765",
        "amount": 320.0,
        "debit_credit": TransactionType.DEBIT,
        "confidence": 0.95,
    }
    values.update(overrides)
    return TransactionCandidate.model_construct(**values)


class TestValidateCandidate:
    """Test each structural check."""

    def test_valid_candidate(self):
        result = validate_candidate(make_candidate())
        assert result.is_valid is True
        assert result.errors == []
        assert result.needs_manual_review is False

    @pytest.mark.parametrize("value", ["01-08-2025", "2025/08/01", "", None, "2025-8-1"])
    def test_bad_date_format(self, value):
        result = validate_candidate(make_candidate(date=value))
        assert result.is_valid is False
        assert "Invalid date format" in result.errors

    def test_impossible_calendar_date(self):
        result = validate_candidate(make_candidate(date="2025-02-30"))
        assert result.errors == ["Invalid date value"]

    @pytest.mark.parametrize("value", [0, -5.0, float("nan"), float("inf"), "100", None, True])
    def test_bad_amount(self, value):
        result = validate_candidate(make_candidate(amount=value))
        assert "Invalid amount" in result.errors

    def test_large_amount_is_a_warning(self):
        result = validate_candidate(make_candidate(amount=5_000_000.0))
        assert result.is_valid is True
        assert any("Unusually large" in w for w in result.warnings)

    @pytest.mark.parametrize("value", [None, "withdrawal"])
    def test_missing_direction(self, value):
        result = validate_candidate(make_candidate(debit_credit=value))
        assert "Missing or invalid debit/credit indicator" in result.errors

    def test_string_direction_is_accepted(self):
        """The enum is a str enum, so the plain value validates too."""
        assert validate_candidate(make_candidate(debit_credit="credit")).is_valid is True

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_blank_narration(self, value):
        result = validate_candidate(make_candidate(narration=value))
        assert "Empty narration" in result.errors

    def test_low_confidence_needs_review_but_stays_valid(self):
        result = validate_candidate(make_candidate(confidence=0.45))
        assert result.is_valid is True
        assert result.needs_manual_review is True
        assert "Low confidence score" in result.warnings
        assert result.errors == []

    def test_threshold_is_inclusive_of_half(self):
        assert validate_candidate(make_candidate(confidence=0.5)).needs_manual_review is False

    @pytest.mark.parametrize("value", [None, "high", float("nan")])
    def test_non_numeric_confidence_needs_review(self, value):
        assert validate_candidate(make_candidate(confidence=value)).needs_manual_review is True

    def test_collects_every_error(self):
        """All failures are reported together, the validator never raises."""
        result = validate_candidate(make_candidate(date="x", amount=-1, debit_credit=None, narration=""))
        assert len(result.errors) == 4

    def test_arbitrary_object_does_not_raise(self):
        result = validate_candidate(object())
        assert result.is_valid is False
        assert result.needs_manual_review is True


class TestValidateTransactions:
    """Test pairing candidates with results."""

    def test_validated_transaction_keeps_fields(self):
        txn = validate_transaction(make_candidate())
        assert txn.narration == "UPI/Swiggy/98765"
        assert txn.validation.is_valid is True

    def test_invalid_records_are_returned(self):
        records = validate_transactions([make_candidate(), make_candidate(amount=0)])
        assert len(records) == 2
        assert [r.validation.is_valid for r in records] == [True, False]
