"""Shared test fixtures."""

import fitz  # PyMuPDF
import pytest


def _make_pdf(pages: list[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((40, 60), text, fontsize=8)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf():
    """Build a PDF with a real text layer, one string per page."""
    return _make_pdf


@pytest.fixture
def bank_statement_pdf() -> bytes:
    lines = [
        f"{day:02d}-08-2025 UPI/MERCHANT{day}/{day}0000 UPI{day}00000{day} 10.00(Dr) {1000 - 10 * day}.00(Cr)"
        for day in range(1, 21)
    ]
    return _make_pdf(["\n".join(["Statement of Account"] + lines)])


@pytest.fixture
def payment_app_pdf() -> bytes:
    return _make_pdf(["Google Pay\nTransaction statement\n30 Nov, 2025\nPaid to Swiggy\nRs 250"])
