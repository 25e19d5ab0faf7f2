"""Tests for the source detector."""

import pytest

from ledgerlift.models import DocumentKind
from ledgerlift.parsers.detector import classify_text, detect_document_kind


class TestClassifyText:
    """Test marker-based classification."""

    @pytest.mark.parametrize(
        "text",
        ["Google Pay statement", "GPay", "PhonePe transaction history", "Paytm", "UPI Transaction ID: 1", "UPI ID: a@b"],
    )
    def test_payment_app_markers(self, text):
        assert classify_text(text) == DocumentKind.IMAGE_HEAVY

    def test_bank_statement_with_upi_narrations(self):
        """A bare UPI token is not a payment-app marker."""
        text = "Statement of Account\n01-08-2025 UPI/NEFT/Ram Card/54321 75.00(Dr) 601.54(Cr)"
        assert classify_text(text) == DocumentKind.STRUCTURED_TEXT

    def test_marker_split_across_whitespace(self):
        assert classify_text("Google\n  Pay") == DocumentKind.IMAGE_HEAVY

    def test_empty_text(self):
        assert classify_text("") == DocumentKind.STRUCTURED_TEXT


class TestDetectDocumentKind:
    """Test detection on real PDF bytes."""

    def test_bank_statement(self, bank_statement_pdf):
        assert detect_document_kind(bank_statement_pdf) == DocumentKind.STRUCTURED_TEXT

    def test_payment_app_export(self, payment_app_pdf):
        assert detect_document_kind(payment_app_pdf) == DocumentKind.IMAGE_HEAVY

    def test_only_first_pages_are_read(self, make_pdf):
        pdf = make_pdf(["Statement of Account", "Page two", "Google Pay"])
        assert detect_document_kind(pdf, max_pages=2) == DocumentKind.STRUCTURED_TEXT
        assert detect_document_kind(pdf, max_pages=3) == DocumentKind.IMAGE_HEAVY

    def test_unreadable_bytes_are_image_heavy(self):
        assert detect_document_kind(b"this is not a pdf at all") == DocumentKind.IMAGE_HEAVY
