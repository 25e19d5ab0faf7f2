"""End-to-end statement processing: detect, acquire, extract, dedup, categorize, validate."""

import asyncio
import logging
import time
from typing import Optional

from ledgerlift.config import settings
from ledgerlift.models import (
    Category,
    DocumentKind,
    PipelineMetadata,
    PipelineMethod,
    PipelineResult,
    RawDocument,
    TransactionCandidate,
    ValidatedTransaction,
)
from ledgerlift.parsers.acquisition import acquire_text
from ledgerlift.parsers.ai_extractor import extract_from_chunks, extract_with_vision
from ledgerlift.parsers.chunker import chunk_text
from ledgerlift.parsers.detector import detect_document_kind
from ledgerlift.parsers.document_types import StatementProfile
from ledgerlift.parsers.normalizer import clean_payment_app_text, normalize_text
from ledgerlift.parsers.patterns import parse_transactions_with_stats
from ledgerlift.parsers.validation import validate_file_contents
from ledgerlift.services.category_assigner import CategoryAssigner
from ledgerlift.services.dedup import post_process
from ledgerlift.services.validator import validate_transactions

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = {
    PipelineMethod.REGEX: 0.95,
    PipelineMethod.HYBRID: 0.85,
    PipelineMethod.LLM: 0.8,
    PipelineMethod.VISION: 0.9,
}


def batch_confidence(method: PipelineMethod, found: int, page_count: int) -> float:
    """
    Confidence of a whole extraction run, from the method and how densely it found transactions.

    Fewer than one transaction per page scales the base by 0.7, fewer than
    three per page by 0.85. Nothing found means no confidence at all.
    """
    if found == 0:
        return 0.0
    confidence = BASE_CONFIDENCE[method]
    per_page = found / max(page_count, 1)
    if per_page < 1:
        confidence *= 0.7
    elif per_page < 3:
        confidence *= 0.85
    return min(confidence, 1.0)


def resolve_method(candidates: list[TransactionCandidate]) -> PipelineMethod:
    """Which tiers' candidates survived into the final list."""
    tiers = {candidate.tier for candidate in candidates}
    if "vision" in tiers:
        return PipelineMethod.VISION
    if "llm" in tiers:
        return PipelineMethod.HYBRID if "regex" in tiers else PipelineMethod.LLM
    return PipelineMethod.REGEX


async def _extract_vision(
    contents: bytes, profile: StatementProfile, metadata: PipelineMetadata
) -> list[TransactionCandidate]:
    try:
        extraction = await extract_with_vision(contents, profile)
    except Exception as e:
        logger.error(f"Vision extraction failed, falling back to OCR text: {e}")
        metadata.errors.append(f"vision: {e}")
        return []

    metadata.errors.extend(extraction.errors)
    metadata.page_count = extraction.page_count
    metadata.chunks_parsed = extraction.units_processed
    return extraction.candidates


async def _extract_text(
    contents: bytes, kind: DocumentKind, profile: StatementProfile, metadata: PipelineMetadata
) -> list[TransactionCandidate]:
    extraction = await acquire_text(contents, kind)
    metadata.acquisition_method = extraction.method
    metadata.page_count = extraction.page_count or metadata.page_count

    text = extraction.text
    if kind is DocumentKind.IMAGE_HEAVY:
        text = clean_payment_app_text(text).text
    text = normalize_text(text, profile.date_order)

    parsed = parse_transactions_with_stats(text, profile)
    candidates = list(parsed.transactions)
    print(f"🔎 Pattern tier found {len(candidates)} transactions")

    if len(candidates) < settings.regex_min_transactions:
        logger.info(
            f"Pattern tier found {len(candidates)} < {settings.regex_min_transactions} transactions, "
            "escalating to the LLM"
        )
        chunks = chunk_text(text, settings.chunk_size, settings.chunk_overlap)
        extraction = await extract_from_chunks(chunks, profile)
        metadata.chunks_parsed = extraction.units_processed
        metadata.errors.extend(extraction.errors)
        candidates.extend(extraction.candidates)

    return candidates


def _categorize(
    candidates: list[TransactionCandidate],
    user_id: str,
    categories: list[Category],
    assigner: CategoryAssigner,
) -> None:
    for candidate in candidates:
        candidate.category = assigner.assign(user_id, candidate.narration, categories, candidate.debit_credit)


def _save(records: list[ValidatedTransaction], user_id: str, store) -> int:
    saved = 0
    for record in records:
        if not record.validation.is_valid or record.validation.needs_manual_review:
            continue
        if store.create_transaction(user_id, record):
            saved += 1
    skipped = sum(1 for record in records if record.validation.is_valid) - saved
    print(f"💾 Saved {saved} transactions ({skipped} skipped as duplicates or for review)")
    return saved


async def process_statement(
    contents: bytes,
    user_id: str,
    *,
    store=None,
    categories: Optional[list[Category]] = None,
    assigner: Optional[CategoryAssigner] = None,
    profile: Optional[StatementProfile] = None,
    save: bool = False,
) -> PipelineResult:
    """
    Turn one statement document into validated, categorized transactions.

    Args:
        contents: Raw PDF bytes
        user_id: Owner of the transactions, used for learning and saving
        store: Persistence collaborator (see ``ledgerlift.db.sqlite.Database``)
        categories: Category pool; loaded from ``store`` when omitted
        assigner: Category assigner; built over ``store`` when omitted
        profile: Statement layout conventions; taken from settings when omitted
        save: Write valid, confident records through ``store``

    Raises:
        ValidationError: If the upload is empty or too small
        AcquisitionError: If no text could be obtained from the document
        CategoryPoolEmptyError: If a store or pool is given but holds no categories
    """
    start_time = time.time()
    validate_file_contents(contents)
    profile = profile or StatementProfile.from_settings()
    metadata = PipelineMetadata()

    document = RawDocument(contents=contents)
    document.kind = kind = await asyncio.to_thread(detect_document_kind, document.contents)
    metadata.document_kind = kind
    logger.info(f"Processing document {document.sha256[:12]} ({len(contents)} bytes) as {kind.value}")

    candidates: list[TransactionCandidate] = []
    if kind is DocumentKind.IMAGE_HEAVY and settings.vision_enabled:
        candidates = await _extract_vision(contents, profile, metadata)
        if not candidates:
            logger.info("Vision extraction found nothing, trying the OCR text path")

    if not candidates:
        candidates = await _extract_text(contents, kind, profile, metadata)

    candidates = post_process(candidates, date_order=profile.date_order)
    metadata.method = resolve_method(candidates)

    if categories is None and store is not None:
        categories = store.find_user_categories(user_id)
    if categories is None:
        logger.info("No category pool available, transactions left uncategorized")
    elif candidates:
        _categorize(candidates, user_id, categories, assigner or CategoryAssigner(store))

    records = validate_transactions(candidates)

    metadata.total_found = len(records)
    metadata.high_confidence_count = sum(
        1 for record in records if record.validation.is_valid and record.confidence >= settings.review_confidence_threshold
    )
    metadata.low_confidence_count = metadata.total_found - metadata.high_confidence_count
    metadata.confidence = batch_confidence(metadata.method, metadata.total_found, metadata.page_count)

    if save:
        if store is None:
            raise ValueError("save=True needs a store")
        metadata.saved_count = _save(records, user_id, store)

    metadata.time_taken_ms = int((time.time() - start_time) * 1000)
    print(
        f"✅ Processed statement: {metadata.total_found} transactions via {metadata.method.value} "
        f"({metadata.high_confidence_count} high confidence) in {metadata.time_taken_ms}ms"
    )
    return PipelineResult(transactions=records, metadata=metadata)
