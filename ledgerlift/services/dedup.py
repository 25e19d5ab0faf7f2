"""Deduplication logic for ledgerlift."""

import hashlib
import logging
from typing import Literal

from ledgerlift.config import settings
from ledgerlift.models import TransactionCandidate
from ledgerlift.parsers.ai_extractor import canonicalize_date
from ledgerlift.parsers.document_types import StatementProfile

logger = logging.getLogger(__name__)


def compute_document_hash(contents: bytes) -> str:
    """Compute SHA256 hash of document contents."""
    return hashlib.sha256(contents).hexdigest()


def compute_transaction_hash(user_id: str, candidate: TransactionCandidate) -> str:
    """
    Compute a unique hash for a transaction.

    This hash is used to detect duplicate transactions even across
    different uploads of the same statement.
    """
    direction = candidate.debit_credit.value if candidate.debit_credit else ""
    # Normalize the data for consistent hashing
    normalized = (
        f"{user_id}|{candidate.date}|{' '.join(candidate.narration.split()).lower()}"
        f"|{candidate.amount:.2f}|{direction}"
    )
    return hashlib.sha256(normalized.encode()).hexdigest()


def dedup_key(candidate: TransactionCandidate, prefix_length: int = 20) -> tuple[str, float, str]:
    """Composite identity: (date, amount to the cent, narration prefix)."""
    narration = " ".join(candidate.narration.split()).casefold()
    return candidate.date, round(candidate.amount, 2), narration[:prefix_length]


def post_process(
    candidates: list[TransactionCandidate],
    prefix_length: int | None = None,
    date_order: Literal["dmy", "mdy"] | None = None,
) -> list[TransactionCandidate]:
    """
    Normalize candidates from any tier and drop duplicates.

    Narration whitespace is collapsed and dates are re-canonicalized before
    keys are compared. The first candidate seen for a key wins and the input
    order is kept.
    """
    prefix_length = prefix_length or settings.dedup_prefix_length
    profile = StatementProfile(date_order=date_order or settings.date_order)

    seen: set[tuple[str, float, str]] = set()
    unique: list[TransactionCandidate] = []

    for candidate in candidates:
        candidate.narration = " ".join(candidate.narration.split())
        candidate.date = canonicalize_date(candidate.date, profile) or candidate.date

        key = dedup_key(candidate, prefix_length)
        if key in seen:
            logger.debug(f"Skipping duplicate transaction: {candidate.narration} on {candidate.date}")
            continue
        seen.add(key)
        unique.append(candidate)

    if len(unique) < len(candidates):
        logger.info(f"Removed {len(candidates) - len(unique)} duplicate transactions")

    return unique
