"""Shared validation utilities for statement parsers."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

# Configure logging for parsers
logger = logging.getLogger("ledgerlift.parsers")

CURRENCY_MARKERS = re.compile(r"(?i)₹|\bINR\b|\bRs\.?|\$")


@dataclass
class ParseResult:
    """Result of running an extraction tier over a document."""

    transactions: list[Any]
    total_rows_processed: int = 0
    rows_skipped: int = 0
    ambiguous_rows: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate the parsing success rate."""
        if self.total_rows_processed == 0:
            return 0.0
        parsed = len(self.transactions)
        return (parsed / self.total_rows_processed) * 100


class ValidationError(Exception):
    """Raised when an upload fails validation before parsing."""

    pass


def validate_file_contents(contents: bytes, min_size: int = 10) -> None:
    """
    Validate file contents before parsing.

    Args:
        contents: Raw file bytes
        min_size: Minimum expected file size in bytes

    Raises:
        ValidationError: If validation fails
    """
    if not contents:
        raise ValidationError("File is empty")

    if len(contents) < min_size:
        raise ValidationError(f"File too small ({len(contents)} bytes), minimum {min_size} bytes expected")


def validate_amount(amount: float, min_val: float = 0.0, max_val: float = 1_000_000) -> bool:
    """
    Validate that an unsigned amount is within reasonable bounds.

    The lower bound is exclusive: a zero amount is never a transaction.
    """
    if amount is None:
        return False

    # Check for NaN or infinity
    if amount != amount or abs(amount) == float("inf"):
        return False

    return min_val < amount <= max_val


def clean_amount_string(amount_str: str) -> str:
    """
    Clean an amount string for parsing.

    Strips currency markers (₹, Rs., INR, $), whitespace and thousand
    separators, including Indian lakh grouping such as 1,00,000.00.
    """
    if not amount_str:
        return "0"

    cleaned = CURRENCY_MARKERS.sub("", amount_str)
    cleaned = cleaned.replace(" ", "").replace(",", "").strip()

    # Handle parentheses for negative numbers
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]

    return cleaned


def normalize_description(description: str) -> str:
    """Collapse whitespace and strip stray separators from a narration."""
    if not description:
        return ""

    description = " ".join(description.split())
    description = re.sub(r"^[\s|:\-]+|[\s|:\-]+$", "", description)

    return description.strip()


def log_parse_result(result: ParseResult, parser_name: str) -> None:
    """
    Log parsing results for debugging.

    Args:
        result: The parse result
        parser_name: Name of the parser
    """
    logger.info(
        f"{parser_name}: Parsed {len(result.transactions)} transactions "
        f"(processed {result.total_rows_processed}, "
        f"skipped {result.rows_skipped}, "
        f"ambiguous {result.ambiguous_rows}, "
        f"success {result.success_rate:.0f}%)"
    )

    if result.warnings:
        for warning in result.warnings[:5]:  # Log first 5 warnings
            logger.debug(f"{parser_name}: {warning}")
