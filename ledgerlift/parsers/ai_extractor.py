"""LLM-assisted transaction extraction from text chunks and page images."""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime

from dateutil import parser as date_parser

from ledgerlift.config import settings
from ledgerlift.models import TextChunk, TransactionCandidate, TransactionType
from ledgerlift.parsers.acquisition import render_pages_png
from ledgerlift.parsers.document_types import ExtractedBatch, RawAITransaction, StatementProfile
from ledgerlift.parsers.llm_client import llm_extract_json
from ledgerlift.parsers.patterns import parse_date_token
from ledgerlift.parsers.validation import CURRENCY_MARKERS, normalize_description

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = {"llm": 0.7, "vision": 0.9}

# Characters OCR confuses with digits
OCR_DIGIT_FIXES = str.maketrans({"O": "0", "o": "0", "l": "1", "I": "1", "|": "1"})

CREDIT_WORDS = {"credit", "cr", "income", "received", "deposit", "refund"}

FILL_DEFAULTS = (datetime(2000, 1, 1), datetime(2004, 12, 28))


@dataclass
class AIExtraction:
    """Candidates from one AI-tier run plus per-unit bookkeeping."""

    candidates: list[TransactionCandidate] = field(default_factory=list)
    units_processed: int = 0
    page_count: int = 0
    errors: list[str] = field(default_factory=list)


def repair_ocr_amount(value) -> float:
    """
    Turn an OCR-damaged amount into a number.

    "7O0.5O" becomes 700.5. Anything that still is not a number becomes 0.0,
    which the validator later reports as a non-positive amount.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return abs(float(value))

    cleaned = CURRENCY_MARKERS.sub("", str(value)).replace(",", "")
    cleaned = cleaned.translate(OCR_DIGIT_FIXES)
    cleaned = re.sub(r"[^0-9.]", "", cleaned).strip(".")
    if cleaned.count(".") > 1:
        whole, _, fraction = cleaned.rpartition(".")
        cleaned = whole.replace(".", "") + "." + fraction

    try:
        return float(cleaned) if cleaned else 0.0
    except ValueError:
        return 0.0


def canonicalize_date(value: str | None, profile: StatementProfile | None = None) -> str:
    """
    Reformat a date to YYYY-MM-DD.

    ISO dates are kept, numeric tokens follow the profile's date order, and
    anything else is re-parsed with dateutil. Values that are unparseable or
    lack a year, month or day come back unchanged so the validator can
    report them.
    """
    if not value:
        return ""
    profile = profile or StatementProfile.from_settings()
    value = value.strip()

    token = parse_date_token(value, profile.date_order)
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", token):
        return token

    dayfirst = profile.date_order == "dmy"
    try:
        # dateutil fills missing fields from the default, so two defaults expose them
        parsed = [date_parser.parse(value, dayfirst=dayfirst, default=default) for default in FILL_DEFAULTS]
    except (ValueError, OverflowError):
        logger.debug(f"Could not canonicalize date: {value!r}")
        return value

    if parsed[0] != parsed[1]:
        logger.debug(f"Incomplete date left as-is: {value!r}")
        return value
    return parsed[0].date().isoformat()


def coerce_transaction_type(value: str | None) -> TransactionType:
    """Map whatever the model said to debit/credit. Unknown values become debit."""
    if value and value.strip().lower() in CREDIT_WORDS:
        return TransactionType.CREDIT
    return TransactionType.DEBIT


def _confidence(value, default: float) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    if confidence != confidence:
        return default
    return min(max(confidence, 0.0), 1.0)


def to_candidate(
    raw: RawAITransaction,
    tier: str,
    profile: StatementProfile | None = None,
    page_index: int | None = None,
) -> TransactionCandidate | None:
    """Post-process one raw AI record. Returns None for records with no usable field."""
    if not raw.date and not raw.description and raw.amount in (None, ""):
        return None

    return TransactionCandidate(
        date=canonicalize_date(raw.date, profile),
        narration=normalize_description(raw.description or ""),
        amount=repair_ocr_amount(raw.amount),
        debit_credit=coerce_transaction_type(raw.type or raw.debit_credit),
        balance=repair_ocr_amount(raw.balance) if raw.balance not in (None, "") else None,
        confidence=_confidence(raw.confidence, DEFAULT_CONFIDENCE[tier]),
        raw=raw.raw or "",
        transaction_id=raw.transaction_id,
        account=raw.account,
        time=raw.time,
        tier=tier,
        page_index=page_index,
    )


def convert_records(
    records: list[RawAITransaction],
    tier: str,
    profile: StatementProfile | None = None,
    page_index: int | None = None,
    batch_pages: int = 0,
) -> list[TransactionCandidate]:
    """
    Convert raw AI records to candidates, skipping any record that fails to convert.

    With ``batch_pages`` set, a record's 1-based ``page`` is resolved against
    ``page_index``, the first page of the batch; a missing or out-of-range
    page leaves the record on ``page_index``.
    """
    candidates = []
    for raw in records:
        record_page = page_index
        if batch_pages and page_index is not None:
            record_page = page_index + _batch_offset(raw.page, batch_pages)
        try:
            candidate = to_candidate(raw, tier, profile, record_page)
        except Exception as e:
            logger.warning(f"Skipping {tier} record that failed to convert ({e}): {raw!r}")
            continue
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _batch_offset(page, batch_pages: int) -> int:
    try:
        position = int(page)
    except (TypeError, ValueError):
        return 0
    return position - 1 if 1 <= position <= batch_pages else 0


def dedup_ai_candidates(
    candidates: list[TransactionCandidate], prefix_length: int | None = None
) -> list[TransactionCandidate]:
    """Drop repeats within the AI tier by (date, amount, description prefix)."""
    prefix_length = prefix_length or settings.dedup_prefix_length
    seen = set()
    unique = []
    for candidate in candidates:
        key = (candidate.date, round(candidate.amount, 2), candidate.narration[:prefix_length].lower())
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)

    if len(unique) < len(candidates):
        logger.info(f"AI tier: removed {len(candidates) - len(unique)} duplicate transactions")
    return unique


def build_chunk_prompt(chunk: TextChunk) -> str:
    return f"""You are a financial data extraction engine for bank statements.

Extract ALL transactions from the statement text below.

RULES:
1. A transaction has a date, a narration/description, an amount and a debit/credit direction
2. Dates may be DD-MM-YYYY or YYYY-MM-DD; output YYYY-MM-DD
3. UPI/NEFT/IMPS/RTGS lines are transactions
4. Money going out (withdrawal, payment, "Dr") is "debit"; money coming in (deposit, "Cr") is "credit"
5. "amount" is the transaction amount as a positive number, NEVER the running balance
6. Put the running balance, if shown, in "balance"
7. Set confidence to 0.9 if sure, 0.7 if somewhat sure, 0.5 if uncertain

EXAMPLE INPUT:
01-08-2025 UPI/NEFT/Ram Card/54321 UPI54321234567 75.00(Dr) 601.54(Cr)

EXAMPLE OUTPUT:
{{"chunkId": "{chunk.chunk_id}", "transactions": [{{"date": "2025-08-01", "narration": "UPI/NEFT/Ram Card/54321", "amount": 75.00, "type": "debit", "balance": 601.54, "raw": "01-08-2025 UPI/NEFT/Ram Card/54321 UPI54321234567 75.00(Dr) 601.54(Cr)", "confidence": 0.9}}]}}

If there are no transactions, return {{"chunkId": "{chunk.chunk_id}", "transactions": []}}

TEXT TO ANALYZE:
{chunk.text}

Respond with the JSON object only, no markdown, no code fences."""


VISION_PROMPT = """You are a data extraction engine for payment-app statement images.

The images are consecutive pages of ONE document. Find every completed
transaction on every page.

Return ONLY a JSON object: {"transactions": [...]} where each transaction is
{
  "date": "YYYY-MM-DD",
  "time": "HH:MM AM/PM",
  "description": "payee or payer name",
  "transaction_id": "UPI transaction ID",
  "account": "bank account, e.g. 'Kotak Mahindra Bank 0938'",
  "amount": 123.45,
  "type": "debit" for "Paid to" / "Sent to", "credit" for "Received from",
  "raw": "the text of this transaction block",
  "page": 1-based position of the image the transaction is on, within this request
}

Convert dates like "30 Nov, 2025" to "2025-11-30". Use null for a field you
cannot read; never guess. Skip failed transactions, balance checks and promotions.
No markdown, no code fences, no commentary."""


async def _extract_chunk(
    chunk: TextChunk, profile: StatementProfile | None
) -> tuple[list[TransactionCandidate], str | None]:
    if not chunk.text.strip():
        return [], None

    try:
        start_time = time.time()
        batch = await llm_extract_json(
            build_chunk_prompt(chunk),
            ExtractedBatch,
            timeout=settings.llm_timeout,
            max_retries=settings.llm_max_retries,
        )
    except Exception as e:
        logger.error(f"Chunk {chunk.chunk_index} extraction failed: {e}")
        return [], f"chunk {chunk.chunk_index}: {e}"

    candidates = convert_records(batch.transactions, "llm", profile, chunk.page_index)
    print(f"✅ Chunk {chunk.chunk_index}: {len(candidates)} transactions in {time.time() - start_time:.1f}s")
    return candidates, None


async def extract_from_chunk(chunk: TextChunk, profile: StatementProfile | None = None) -> list[TransactionCandidate]:
    """Extract candidates from one text chunk. Any failure yields an empty list."""
    candidates, _ = await _extract_chunk(chunk, profile)
    return candidates


async def extract_from_chunks(
    chunks: list[TextChunk],
    profile: StatementProfile | None = None,
    concurrency: int | None = None,
) -> AIExtraction:
    """
    Extract candidates from all chunks concurrently.

    At most ``concurrency`` LLM calls are in flight. A failed chunk is
    recorded in ``errors`` and contributes nothing.
    """
    limit = concurrency or settings.llm_concurrency
    semaphore = asyncio.Semaphore(limit)
    print(f"🤖 Extracting transactions from {len(chunks)} chunks (max {limit} concurrent)...")

    async def process_with_semaphore(chunk: TextChunk):
        async with semaphore:
            return await _extract_chunk(chunk, profile)

    results = await asyncio.gather(*[process_with_semaphore(chunk) for chunk in chunks])

    extraction = AIExtraction(units_processed=len(chunks))
    for candidates, error in results:
        extraction.candidates.extend(candidates)
        if error:
            extraction.errors.append(error)

    extraction.candidates = dedup_ai_candidates(extraction.candidates)
    return extraction


async def extract_with_vision(
    contents: bytes,
    profile: StatementProfile | None = None,
    batch_size: int | None = None,
    batch_delay: float | None = None,
) -> AIExtraction:
    """
    Extract candidates from rendered page images, one vision call per batch.

    Batches run sequentially with a delay between them (not after the last)
    and are never retried; a failed batch is recorded and skipped.
    """
    batch_size = batch_size or settings.vision_batch_size
    batch_delay = settings.vision_batch_delay if batch_delay is None else batch_delay

    images = await asyncio.to_thread(render_pages_png, contents)
    extraction = AIExtraction(page_count=len(images))
    print(f"📸 Vision extraction: {len(images)} pages in batches of {batch_size}")

    for start in range(0, len(images), batch_size):
        batch_images = images[start:start + batch_size]
        end = start + len(batch_images)
        print(f"🚀 Processing pages {start + 1} to {end}...")

        try:
            batch = await llm_extract_json(
                VISION_PROMPT,
                ExtractedBatch,
                images=batch_images,
                timeout=settings.vision_timeout,
                max_retries=1,
            )
        except Exception as e:
            logger.error(f"Vision batch for pages {start + 1}-{end} failed: {e}")
            extraction.errors.append(f"vision pages {start + 1}-{end}: {e}")
        else:
            extraction.candidates.extend(
                convert_records(batch.transactions, "vision", profile, page_index=start, batch_pages=len(batch_images))
            )
        extraction.units_processed += 1

        if end < len(images):
            logger.info(f"Waiting {batch_delay}s before next vision batch")
            await asyncio.sleep(batch_delay)

    extraction.candidates = dedup_ai_candidates(extraction.candidates)
    print(f"✅ Vision extraction: {len(extraction.candidates)} transactions")
    return extraction
