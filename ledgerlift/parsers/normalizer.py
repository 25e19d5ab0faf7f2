"""Text normalization for raw statement text.

``normalize_text`` is pure and idempotent: running it on its own output
returns the same string. Dates are canonicalized to ISO ``YYYY-MM-DD``.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Literal

logger = logging.getLogger(__name__)

PAGE_MARKER = re.compile(r"(?i)\bpage\s+\d+\s+of\s+\d+\b")
VALUE_DATE = re.compile(r"(?i)\(\s*value\s+date[^)]*\)")
NUMERIC_DATE = re.compile(r"(?<!\d)(\d{1,2})([-/.])(\d{1,2})\2(\d{4})(?!\d)")
RUPEE_SPACING = re.compile(r"₹[ \t]+(?=\d)")
RUPEE_WORDS = re.compile(r"(?i)\b(?:Rs\.?|INR)[ \t]*(?=\d)")
INLINE_SPACE = re.compile(r"[ \t\u00a0\f\v]+")

# Phrases OCR tends to letter-space ("P a i d  t o")
SPACED_PHRASES = [
    "Paid to",
    "Received from",
    "Sent to",
    "UPI",
    "Completed",
    "Google Pay",
    "Transaction ID",
]

MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
TEXT_DATE_COMMA = re.compile(rf"(?i)\b(\d{{1,2}})\s+({MONTHS})[a-z]*,?\s+(\d{{4}})\b")

BLOCK_START = re.compile(r"(?i)^(paid to|received from|sent to)\b")
DATE_ONLY_LINE = re.compile(
    rf"(?i)^\d{{1,2}}\s+(?:{MONTHS})[a-z]*,?\s+\d{{4}}(?:,?\s+\d{{1,2}}:\d{{2}}(?::\d{{2}})?\s*(?:am|pm)?)?$"
)
TIME_ONLY_LINE = re.compile(r"(?i)^\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?$")

NOISE_PHRASES = [
    re.compile(r"(?i)scratch\s+card"),
    re.compile(r"(?i)cashback\s+reward"),
    re.compile(r"(?i)try\s+adding\s+bank\s+account"),
    re.compile(r"(?i)google\s+pay\s+settings"),
    re.compile(r"(?i)scan\s+qr"),
    re.compile(r"(?i)reward\s+unlocked"),
    re.compile(r"(?i)cashback\s+pending"),
    re.compile(r"(?i)add\s+money"),
    re.compile(r"(?i)invite\s+friends"),
    re.compile(r"(?i)refer\s+and\s+earn"),
]

# Lines a payment-app block may absorb after its start line
BLOCK_LOOKAHEAD = 5


def _spaced_phrase_pattern(phrase: str) -> re.Pattern:
    words = []
    for word in phrase.split():
        words.append("(" + r"[ \t]*".join(re.escape(ch) for ch in word) + ")")
    return re.compile(r"(?<![A-Za-z])" + r"[ \t]*".join(words) + r"(?![A-Za-z])", re.IGNORECASE)


SPACED_PATTERNS = [(phrase, _spaced_phrase_pattern(phrase)) for phrase in SPACED_PHRASES]
LETTER_SPACED = re.compile(r"\S(?:[ \t]+\S)+")


def repair_spaced_phrases(text: str) -> str:
    """Re-join letter-spaced OCR phrases, leaving normally spaced text alone."""
    for phrase, pattern in SPACED_PATTERNS:

        def _replace(match: re.Match, phrase: str = phrase) -> str:
            if any(LETTER_SPACED.fullmatch(word) for word in match.groups()):
                return phrase
            return match.group(0)

        text = pattern.sub(_replace, text)
    return text


def normalize_currency(text: str) -> str:
    """Canonicalize Rs./INR/spaced rupee markers in front of a number to ₹."""
    text = RUPEE_SPACING.sub("₹", text)
    return RUPEE_WORDS.sub("₹", text)


def to_iso_date(day_or_month: str, month_or_day: str, year: str, date_order: Literal["dmy", "mdy"] = "dmy") -> str | None:
    """Return ISO ``YYYY-MM-DD`` for a numeric date, or None if it is not a real date."""
    day, month = (day_or_month, month_or_day) if date_order == "dmy" else (month_or_day, day_or_month)
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def canonicalize_dates(text: str, date_order: Literal["dmy", "mdy"] = "dmy") -> str:
    """Rewrite DD-MM-YYYY, DD/MM/YYYY and DD.MM.YYYY tokens as ISO dates."""

    def _replace(match: re.Match) -> str:
        iso = to_iso_date(match.group(1), match.group(3), match.group(4), date_order)
        if iso is None:
            logger.debug(f"Leaving invalid date token untouched: {match.group(0)}")
            return match.group(0)
        return iso

    return NUMERIC_DATE.sub(_replace, text)


def normalize_text(text: str, date_order: Literal["dmy", "mdy"] = "dmy") -> str:
    """
    Clean raw statement text for the extraction tiers.

    Removes page markers and value-date qualifiers, repairs letter-spaced
    OCR phrases, canonicalizes currency markers and numeric dates, collapses
    whitespace inside lines and drops blank lines.
    """
    if not text:
        return ""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = INLINE_SPACE.sub(" ", normalized)
    # Removing one marker can close up another, so strip until nothing changes
    previous = None
    while previous != normalized:
        previous = normalized
        normalized = VALUE_DATE.sub("", normalized)
        normalized = PAGE_MARKER.sub("", normalized)
    normalized = repair_spaced_phrases(normalized)
    normalized = normalize_currency(normalized)
    normalized = canonicalize_dates(normalized, date_order)

    lines = []
    for line in normalized.split("\n"):
        line = INLINE_SPACE.sub(" ", line).strip()
        if line:
            lines.append(line)

    return "\n".join(lines)


@dataclass
class CleanedText:
    """Payment-app text after cleaning, with the number of transaction blocks found."""

    text: str
    transaction_count: int


def clean_payment_app_text(raw_text: str) -> CleanedText:
    """
    Clean OCR output of a payment-app export.

    Each "Paid to" / "Received from" / "Sent to" block is merged into one
    ``" | "``-joined line together with the date/time lines printed just
    above it, so the pattern tier can read a whole transaction per line.
    """
    text = repair_spaced_phrases(raw_text.replace("\r\n", "\n"))
    text = normalize_currency(text)
    text = TEXT_DATE_COMMA.sub(lambda m: f"{m.group(1)} {m.group(2).title()} {m.group(3)}", text)

    for phrase in NOISE_PHRASES:
        text = phrase.sub("", text)

    lines: list[str] = []
    for line in text.split("\n"):
        line = INLINE_SPACE.sub(" ", line).strip()
        # OCR of overlapping renders repeats lines back to back
        if line and (not lines or lines[-1] != line):
            lines.append(line)

    merged: list[str] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if not BLOCK_START.match(line):
            merged.append(line)
            i += 1
            continue

        header: list[str] = []
        while merged and len(header) < 2 and (DATE_ONLY_LINE.match(merged[-1]) or TIME_ONLY_LINE.match(merged[-1])):
            header.insert(0, merged.pop())

        block = header + [line]
        j = i + 1
        while j < len(lines) and j <= i + BLOCK_LOOKAHEAD:
            if BLOCK_START.match(lines[j]) or DATE_ONLY_LINE.match(lines[j]):
                break
            block.append(lines[j])
            j += 1

        merged.append(" | ".join(block))
        i = j

    cleaned = "\n".join(merged)
    count = sum(1 for line in merged if re.search(r"(?i)(paid to|received from|sent to)", line))
    logger.info(f"Payment-app text cleaned: {count} potential transactions found")
    return CleanedText(text=cleaned, transaction_count=count)
