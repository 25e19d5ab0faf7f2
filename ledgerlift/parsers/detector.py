"""Classify an uploaded statement as a bank statement or a payment-app export."""

import logging
from io import BytesIO

import pdfplumber

from ledgerlift.config import settings
from ledgerlift.models import DocumentKind

logger = logging.getLogger(__name__)

# No bare "upi": bank narrations carry it too
PAYMENT_APP_MARKERS = [
    "google pay",
    "gpay",
    "phonepe",
    "paytm",
    "upi transaction",
    "upi id",
]


def classify_text(text: str) -> DocumentKind:
    """Classify document text by payment-app markers."""
    lowered = " ".join(text.lower().split())
    for marker in PAYMENT_APP_MARKERS:
        if marker in lowered:
            logger.debug(f"Payment-app marker found: {marker!r}")
            return DocumentKind.IMAGE_HEAVY
    return DocumentKind.STRUCTURED_TEXT


def _quick_text(contents: bytes, max_pages: int) -> str:
    with pdfplumber.open(BytesIO(contents)) as pdf:
        return "\n".join((page.extract_text() or "") for page in pdf.pages[:max_pages])


def detect_document_kind(contents: bytes, max_pages: int | None = None) -> DocumentKind:
    """
    Run a cheap text extraction over the first pages and classify the document.

    A document whose text layer cannot even be read is treated as image-heavy,
    which routes it to OCR/vision.
    """
    max_pages = max_pages or settings.detector_max_pages
    try:
        text = _quick_text(contents, max_pages)
    except Exception as e:
        logger.warning(f"Quick text extraction failed, treating document as image-heavy: {e}")
        return DocumentKind.IMAGE_HEAVY

    kind = classify_text(text)
    print(f"🔍 Detected document kind: {kind.value}")
    return kind
