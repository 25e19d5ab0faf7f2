"""Text acquisition: pdfplumber text layer first, page OCR when it is not good enough."""

import asyncio
import logging
from io import BytesIO

import fitz  # PyMuPDF
import pdfplumber
import pytesseract
from PIL import Image

from ledgerlift.config import settings
from ledgerlift.models import AcquisitionMethod, DocumentKind, ExtractionResult

logger = logging.getLogger(__name__)

# Single uniform block of text, the layout payment-app exports render as
TESSERACT_CONFIG = "--psm 6"


class AcquisitionError(Exception):
    """Raised when neither the text layer nor OCR yields any text."""

    pass


def extract_structural_text(contents: bytes) -> tuple[str, int]:
    """Read the embedded text layer of every page. Returns (text, page_count)."""
    with pdfplumber.open(BytesIO(contents)) as pdf:
        texts = [page.extract_text() or "" for page in pdf.pages]
        return "\n".join(texts), len(pdf.pages)


def control_char_ratio(text: str) -> float:
    """Share of control and replacement characters, excluding ordinary whitespace."""
    if not text:
        return 0.0
    bad = sum(1 for ch in text if ch == "�" or (ord(ch) < 32 and ch not in "\n\r\t"))
    return bad / len(text)


def is_low_quality_text(
    text: str, min_length: int | None = None, max_control_ratio: float | None = None
) -> bool:
    """Whether structural text is too short or too garbled to trust."""
    min_length = settings.min_text_length if min_length is None else min_length
    max_control_ratio = settings.max_control_char_ratio if max_control_ratio is None else max_control_ratio
    return len(text.strip()) < min_length or control_char_ratio(text) > max_control_ratio


def count_pages(contents: bytes) -> int:
    with fitz.open(stream=contents, filetype="pdf") as doc:
        return doc.page_count


def render_page_png(contents: bytes, page_number: int, dpi: int | None = None) -> bytes:
    """Render one page (0-based) to PNG bytes."""
    dpi = dpi or settings.ocr_dpi
    with fitz.open(stream=contents, filetype="pdf") as doc:
        page = doc[page_number]
        return page.get_pixmap(dpi=dpi).tobytes("png")


def render_pages_png(contents: bytes, dpi: int | None = None) -> list[bytes]:
    """Render every page to PNG bytes, in page order."""
    dpi = dpi or settings.ocr_dpi
    with fitz.open(stream=contents, filetype="pdf") as doc:
        return [page.get_pixmap(dpi=dpi).tobytes("png") for page in doc]


def _ocr_page(contents: bytes, page_number: int, dpi: int, lang: str) -> str:
    png = render_page_png(contents, page_number, dpi)
    image = Image.open(BytesIO(png))
    text = pytesseract.image_to_string(image, lang=lang, config=TESSERACT_CONFIG)
    # Collapse the blank-line runs tesseract leaves between blocks
    lines = [line.rstrip() for line in text.replace("\r", "\n").split("\n")]
    return "\n".join(line for line in lines if line.strip())


async def _ocr_page_bounded(contents: bytes, page_number: int, dpi: int, lang: str, timeout: float) -> str:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(_ocr_page, contents, page_number, dpi, lang), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.warning(f"OCR timed out on page {page_number + 1} after {timeout}s")
    except Exception as e:
        logger.warning(f"OCR failed on page {page_number + 1}: {e}")
    return ""


async def extract_ocr_text(contents: bytes) -> tuple[str, int]:
    """
    OCR every page concurrently and join the results in page order.

    A page that fails or times out contributes empty text; its siblings
    keep running. Returns (text, page_count).
    """
    page_count = await asyncio.to_thread(count_pages, contents)
    print(f"🔍 Starting OCR on {page_count} pages...")

    texts = await asyncio.gather(
        *[
            _ocr_page_bounded(contents, i, settings.ocr_dpi, settings.ocr_language, settings.ocr_page_timeout)
            for i in range(page_count)
        ]
    )

    empty = sum(1 for text in texts if not text)
    if empty:
        logger.warning(f"OCR produced no text for {empty}/{page_count} pages")
    return "\n".join(text for text in texts if text), page_count


async def acquire_text(contents: bytes, kind: DocumentKind = DocumentKind.STRUCTURED_TEXT) -> ExtractionResult:
    """
    Obtain raw text for a document.

    Structured-text documents try the pdfplumber text layer and keep it when
    it passes the quality gate; everything else goes through OCR.

    Raises:
        AcquisitionError: If neither path produced any text
    """
    structural_text = ""
    page_count = 0

    if kind is DocumentKind.STRUCTURED_TEXT:
        try:
            structural_text, page_count = await asyncio.to_thread(extract_structural_text, contents)
        except Exception as e:
            logger.warning(f"Structural extraction failed, falling back to OCR: {e}")
        else:
            if not is_low_quality_text(structural_text):
                print(f"📄 Structural extraction OK: {len(structural_text)} chars, {page_count} pages")
                return ExtractionResult(
                    text=structural_text, method=AcquisitionMethod.STRUCTURAL, page_count=page_count
                )
            logger.info(f"Structural text is low quality ({len(structural_text.strip())} chars), trying OCR")

    try:
        ocr_text, ocr_pages = await extract_ocr_text(contents)
    except Exception as e:
        logger.error(f"OCR could not open document: {e}")
        ocr_text, ocr_pages = "", 0

    if ocr_text.strip():
        return ExtractionResult(text=ocr_text, method=AcquisitionMethod.OCR, page_count=ocr_pages or page_count)

    if structural_text.strip():
        logger.warning("OCR returned nothing, keeping low-quality structural text")
        return ExtractionResult(
            text=structural_text, method=AcquisitionMethod.STRUCTURAL, page_count=page_count or ocr_pages
        )

    raise AcquisitionError("Document is unreadable: no text layer and OCR produced no text")
