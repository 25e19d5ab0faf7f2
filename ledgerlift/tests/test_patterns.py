"""Tests for the regex extraction tier."""

import pytest

from ledgerlift.models import TransactionType
from ledgerlift.parsers.document_types import StatementProfile
from ledgerlift.parsers.normalizer import normalize_text
from ledgerlift.parsers.patterns import (
    AMBIGUOUS_AMOUNT,
    AMBIGUOUS_CONFIDENCE,
    parse_date_token,
    parse_transactions,
    parse_transactions_with_stats,
)

FIRST = StatementProfile(name="amount-first", amount_position="first")
LAST = StatementProfile(name="balance-first", amount_position="last")


class TestTightRule:
    """Test the date / narration / reference / two tagged amounts layout."""

    def test_kotak_style_line(self):
        """Amount is the first tagged value and the balance is kept apart."""
        line = "01-08-2025 UPI/NEFT/Ram Card/54321 UPI54321234567 75.00(Dr) 601.54(Cr)"
        [txn] = parse_transactions(line, FIRST)

        assert txn.date == "2025-08-01"
        assert txn.amount == 75.00
        assert txn.debit_credit == TransactionType.DEBIT
        assert txn.balance == 601.54
        assert txn.narration == "UPI/NEFT/Ram Card/54321"
        assert txn.transaction_id == "UPI54321234567"
        assert txn.tier == "regex"
        assert txn.confidence == 0.95

    def test_balance_is_never_the_amount(self):
        """The Dr-tagged value wins over the larger Cr-tagged balance."""
        line = "30-11-2025 UPI/HARSH UPADHYAY /570064413612/UPIUPI- UPI-123456789 110.00(Dr) 7,930.00(Cr)"
        [txn] = parse_transactions(line, FIRST)

        assert txn.amount == 110.00
        assert txn.balance == 7930.00
        assert txn.debit_credit == TransactionType.DEBIT
        assert AMBIGUOUS_AMOUNT not in txn.flags

    def test_works_on_normalized_text(self):
        """Normalized lines carry ISO dates and still parse."""
        text = normalize_text("Page 1 of 2\n01-08-2025  UPI/NEFT/Ram Card/54321 UPI54321234567 75.00(Dr) 601.54(Cr)")
        [txn] = parse_transactions(text, FIRST)
        assert txn.date == "2025-08-01"
        assert txn.amount == 75.00

    def test_credit_line(self):
        """A Cr-tagged amount is a credit."""
        [txn] = parse_transactions("02-08-2025 NEFT/ACME PAYROLL N12345678 5,000.00(Cr) 5,601.54(Cr)", FIRST)
        assert txn.debit_credit == TransactionType.CREDIT
        assert txn.amount == 5000.00
        assert txn.balance == 5601.54


class TestAmountPosition:
    """Test both amount orderings of two-amount lines."""

    LINE = "02-08-2025 NEFT/ACME PAYROLL N12345678 55,000.00(Cr) 5,000.00(Cr)"

    def test_balance_first_layout(self):
        """With amount_position=last the trailing value is the amount."""
        [txn] = parse_transactions(self.LINE, LAST)
        assert txn.amount == 5000.00
        assert txn.balance == 55000.00
        assert txn.debit_credit == TransactionType.CREDIT
        assert txn.flags == []

    def test_wrong_profile_is_flagged_not_swapped(self):
        """A reading where a credit exceeds its resulting balance is flagged."""
        [txn] = parse_transactions(self.LINE, FIRST)
        assert txn.amount == 55000.00
        assert AMBIGUOUS_AMOUNT in txn.flags
        assert txn.confidence == AMBIGUOUS_CONFIDENCE

    def test_running_balance_contradiction_is_flagged(self):
        """A row whose balance only fits the swapped reading is flagged."""
        text = (
            "01-08-2025 UPI/A/1 R1111 100.00(Dr) 900.00(Cr)\n"
            "02-08-2025 UPI/B/2 R2222 850.00(Cr) 50.00(Dr)\n"
            "03-08-2025 UPI/C/3 R3333 25.00(Dr) 825.00(Cr)"
        )
        first, second, third = parse_transactions(text, FIRST)
        assert first.flags == []
        assert second.amount == 850.00
        assert AMBIGUOUS_AMOUNT in second.flags
        assert third.flags == []

    def test_consistent_balances_are_not_flagged(self):
        """Rows whose balances chain correctly keep full confidence."""
        text = (
            "01-08-2025 UPI/A/1 R1111 100.00(Dr) 900.00(Cr)\n"
            "02-08-2025 UPI/B/2 R2222 50.00(Dr) 850.00(Cr)\n"
            "03-08-2025 NEFT/C/3 R3333 150.00(Cr) 1,000.00(Cr)"
        )
        transactions = parse_transactions(text, FIRST)
        assert len(transactions) == 3
        assert all(txn.flags == [] for txn in transactions)
        assert all(txn.confidence == 0.95 for txn in transactions)


class TestCompactRule:
    """Test lines where the text layer glued fields together."""

    def test_parses_glued_amounts(self):
        """Amounts glued to their markers still parse."""
        [txn] = parse_transactions("01-08-2025UPI/Ram/54321 75.00(Dr)601.54(Cr)", FIRST)
        assert txn.date == "2025-08-01"
        assert txn.amount == 75.00
        assert txn.balance == 601.54
        assert txn.narration == "UPI/Ram/54321"
        assert txn.confidence == 0.9

    def test_discards_out_of_range_amount(self):
        """A reference number fused into the amount is discarded, not kept."""
        result = parse_transactions_with_stats("01-08-2025UPI/Ram/54321UPI12345678975.00(Dr)601.54(Cr)", FIRST)
        assert result.transactions == []
        assert result.rows_skipped == 1
        assert result.warnings


class TestOtherRules:
    """Test the loose, ISO, anchor and payment-app rules."""

    def test_loose_rule_infers_debit(self):
        """Untagged amounts take their direction from keywords."""
        [txn] = parse_transactions("03-08-2025 ATM WITHDRAWAL 500.00 101.54", FIRST)
        assert txn.debit_credit == TransactionType.DEBIT
        assert txn.amount == 500.00
        assert txn.balance == 101.54
        assert txn.confidence == 0.85

    def test_loose_rule_infers_credit(self):
        """Without debit keywords an untagged line is a credit."""
        [txn] = parse_transactions("04-08-2025 SALARY ACME 1,000.00 1,101.54", FIRST)
        assert txn.debit_credit == TransactionType.CREDIT
        assert txn.amount == 1000.00

    def test_iso_rule(self):
        """ISO date, one tagged amount and an untagged balance."""
        [txn] = parse_transactions("2025-08-05 CARD PURCHASE 250.00 Dr 851.54", FIRST)
        assert txn.date == "2025-08-05"
        assert txn.amount == 250.00
        assert txn.debit_credit == TransactionType.DEBIT
        assert txn.balance == 851.54

    def test_iso_rule_follows_amount_position(self):
        """A line without a reference token lands on the ISO rule and still honors the profile."""
        text = normalize_text("30-11-2025 NEFT SALARY 50,000.00(Cr) 45,000.00(Cr)")

        [first] = parse_transactions(text, FIRST)
        assert first.amount == 50000.00
        assert first.balance == 45000.00
        assert AMBIGUOUS_AMOUNT in first.flags
        assert first.confidence == AMBIGUOUS_CONFIDENCE

        [last] = parse_transactions(text, LAST)
        assert last.amount == 45000.00
        assert last.balance == 50000.00
        assert last.debit_credit == TransactionType.CREDIT
        assert last.flags == []
        assert last.confidence == 0.95

    def test_anchor_rule_borrows_previous_date(self):
        """A UPI narration line takes its date from a date-only line above."""
        [txn] = parse_transactions("01-08-2025\nUPI/Swiggy/98765 320.00", FIRST)
        assert txn.date == "2025-08-01"
        assert txn.amount == 320.00
        assert txn.narration == "UPI/Swiggy/98765"
        assert txn.debit_credit == TransactionType.DEBIT
        assert txn.confidence == 0.75

    def test_anchor_rule_needs_date_on_previous_line(self):
        """Without a date line directly above, the anchor rule does not fire."""
        assert parse_transactions("Opening balance\nUPI/Swiggy/98765 320.00", FIRST) == []

    def test_payment_app_block(self):
        """A merged payment-app block yields a debit with its metadata."""
        line = (
            "30 Nov 2025, 7:45 pm | Paid to Swiggy | UPI Transaction ID: 533412345678 "
            "| Paid by Kotak Mahindra Bank 0938 | ₹250"
        )
        [txn] = parse_transactions(line, FIRST)
        assert txn.date == "2025-11-30"
        assert txn.narration == "Paid to Swiggy"
        assert txn.amount == 250.0
        assert txn.debit_credit == TransactionType.DEBIT
        assert txn.transaction_id == "533412345678"
        assert txn.account == "Kotak Mahindra Bank 0938"
        assert txn.time == "7:45 pm"
        assert txn.confidence == 0.7

    def test_payment_app_credit(self):
        """Received-from blocks are credits."""
        [txn] = parse_transactions("29 Nov 2025 | Received from Ravi Kumar | ₹1,200", FIRST)
        assert txn.debit_credit == TransactionType.CREDIT
        assert txn.amount == 1200.0

    def test_unmatched_lines_are_ignored(self):
        """Headers and prose produce no candidates."""
        result = parse_transactions_with_stats("Statement of account\nOpening balance 1,000.00", FIRST)
        assert result.transactions == []
        assert result.total_rows_processed == 2


class TestParseDateToken:
    """Test numeric date token canonicalization."""

    @pytest.mark.parametrize(
        "token,order,expected",
        [
            ("01-08-2025", "dmy", "2025-08-01"),
            ("01/08/2025", "mdy", "2025-01-08"),
            ("2025-08-01", "dmy", "2025-08-01"),
            ("31-02-2025", "dmy", "31-02-2025"),
            ("2025-13-01", "dmy", "2025-13-01"),
            ("01-Nov-2025", "dmy", "01-Nov-2025"),
        ],
    )
    def test_tokens(self, token, order, expected):
        assert parse_date_token(token, order) == expected
