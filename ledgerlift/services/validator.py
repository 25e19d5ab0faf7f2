"""Structural validation of transaction candidates."""

import logging
import math
import re
from datetime import date

from ledgerlift.config import settings
from ledgerlift.models import TransactionCandidate, TransactionType, ValidatedTransaction, ValidationResult

logger = logging.getLogger(__name__)

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _check_date(value, errors: list[str]) -> None:
    if not isinstance(value, str) or not ISO_DATE.match(value):
        errors.append("Invalid date format")
        return
    try:
        date.fromisoformat(value)
    except ValueError:
        errors.append("Invalid date value")


def _check_amount(value, errors: list[str], warnings: list[str]) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        errors.append("Invalid amount")
    elif value > settings.max_transaction_amount:
        warnings.append(f"Unusually large amount: {value:.2f}")


def _needs_review(confidence, threshold: float) -> bool:
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or math.isnan(confidence):
        return True
    return confidence < threshold


def validate_candidate(candidate: TransactionCandidate, review_threshold: float | None = None) -> ValidationResult:
    """
    Check a candidate for structural problems.

    Errors (any one makes the candidate invalid): bad date shape or calendar
    date, non-positive or non-numeric amount, missing debit/credit flag,
    blank narration. Low confidence only sets ``needs_manual_review`` and
    adds a warning. Never raises.
    """
    threshold = settings.review_confidence_threshold if review_threshold is None else review_threshold
    errors: list[str] = []
    warnings: list[str] = []

    _check_date(getattr(candidate, "date", None), errors)
    _check_amount(getattr(candidate, "amount", None), errors, warnings)

    direction = getattr(candidate, "debit_credit", None)
    if direction not in (TransactionType.DEBIT, TransactionType.CREDIT):
        errors.append("Missing or invalid debit/credit indicator")

    narration = getattr(candidate, "narration", None)
    if not isinstance(narration, str) or not narration.strip():
        errors.append("Empty narration")

    needs_review = _needs_review(getattr(candidate, "confidence", None), threshold)
    if needs_review:
        warnings.append("Low confidence score")

    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        needs_manual_review=needs_review,
    )


def validate_transaction(candidate: TransactionCandidate, review_threshold: float | None = None) -> ValidatedTransaction:
    """Pair a candidate with its validation result."""
    result = validate_candidate(candidate, review_threshold)
    return ValidatedTransaction.model_construct(**dict(candidate), validation=result)


def validate_transactions(
    candidates: list[TransactionCandidate], review_threshold: float | None = None
) -> list[ValidatedTransaction]:
    """Validate every candidate; invalid ones are returned too, never dropped."""
    validated = [validate_transaction(candidate, review_threshold) for candidate in candidates]
    invalid = sum(1 for txn in validated if not txn.validation.is_valid)
    if invalid:
        logger.info(f"Validation: {invalid}/{len(validated)} candidates failed structural checks")
    return validated
