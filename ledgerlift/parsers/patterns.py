"""Regex tier: line-level pattern rules for bank and payment-app statements.

Rules are tried in order and the first match wins for a line:

1. tight:   date, narration, reference, amount(Dr|Cr), amount(Dr|Cr)
2. compact: the same fields glued together without whitespace
3. loose:   date, narration, two bare amounts, direction from keywords
4. iso:     ISO date, narration, amount with marker, trailing balance
5. anchor:  UPI|NEFT|IMPS|RTGS/... amount, date borrowed from the line above
6. payment-app block: "Paid to | ... | ₹250" lines from the payment-app cleaner

Which of two tagged amounts is the transaction amount is decided by
``StatementProfile.amount_position``; implausible readings are flagged
``ambiguous_amount`` instead of being swapped.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from ledgerlift.config import settings
from ledgerlift.models import TransactionCandidate, TransactionType
from ledgerlift.parsers.document_types import StatementProfile
from ledgerlift.parsers.normalizer import to_iso_date
from ledgerlift.parsers.validation import (
    ParseResult,
    clean_amount_string,
    log_parse_result,
    normalize_description,
    validate_amount,
)

logger = logging.getLogger(__name__)

AMBIGUOUS_AMOUNT = "ambiguous_amount"
AMBIGUOUS_CONFIDENCE = 0.45
BALANCE_TOLERANCE = 0.01

DATE = r"(?:\d{1,2}[-/.]\d{1,2}[-/.]\d{4}|\d{4}-\d{2}-\d{2})"
ISO_DATE = r"\d{4}-\d{2}-\d{2}"
AMOUNT = r"₹?[\d,]*\d(?:\.\d+)?"
MONEY = r"₹?[\d,]*\d\.\d{2}"  # Bare amounts must carry paise to avoid matching reference numbers
REFERENCE = r"(?=[A-Za-z-]*\d)[A-Za-z0-9-]+"

TIGHT = re.compile(
    rf"^(?P<date>{DATE})\s+(?P<narration>.+?)\s+(?P<ref>{REFERENCE})\s+"
    rf"(?P<amt1>{AMOUNT})\s*\(?(?P<m1>Dr|Cr)\)?\s+(?P<amt2>{AMOUNT})\s*\(?(?P<m2>Dr|Cr)\)?$",
    re.IGNORECASE,
)
COMPACT = re.compile(
    rf"^(?P<date>{DATE})(?P<narration>.+?)(?P<amt1>[\d,]+\.?\d*)\((?P<m1>Dr|Cr)\)"
    rf"(?P<amt2>[\d,]+\.?\d*)\((?P<m2>Dr|Cr)\)$",
    re.IGNORECASE,
)
LOOSE = re.compile(
    rf"^(?P<date>{DATE})\s+(?P<narration>.+?)\s+(?P<amt1>{MONEY})\s+(?P<amt2>{MONEY})(?:\s*\(?(?P<m2>Dr|Cr)\)?)?$",
    re.IGNORECASE,
)
ISO_FIRST = re.compile(
    rf"^(?P<date>{ISO_DATE})\s+(?P<narration>.+?)\s+(?P<amt1>{AMOUNT})\s*\(?(?P<m1>Dr|Cr)\)?\s+"
    rf"(?P<amt2>{AMOUNT})(?:\s*\(?(?P<m2>Dr|Cr)\)?)?$",
    re.IGNORECASE,
)
ANCHOR = re.compile(
    rf"^(?P<narration>(?:UPI|NEFT|IMPS|RTGS)/.+?)\s+(?P<amt1>{AMOUNT})(?:\s*\(?(?P<m1>Dr|Cr)\)?)?$",
    re.IGNORECASE,
)
DATE_ONLY = re.compile(rf"^\s*(?P<date>{DATE})\s*$")

DEBIT_KEYWORDS = re.compile(r"debit|withdrawal|payment|transfer|upi.*to", re.IGNORECASE)

MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
TEXT_DATE = re.compile(rf"\b(?P<day>\d{{1,2}})\s+(?P<month>{MONTHS})[a-z]*,?\s+(?P<year>\d{{4}})\b", re.IGNORECASE)
BLOCK = re.compile(r"\b(?P<kind>Paid to|Received from|Sent to)\s+(?P<party>[^|₹]+)", re.IGNORECASE)
BLOCK_AMOUNT = re.compile(r"₹\s?(?P<amount>[\d,]*\d(?:\.\d+)?)")
BLOCK_TXN_ID = re.compile(r"(?:UPI\s+)?Transaction\s+ID:?\s*(?P<id>[A-Za-z0-9]+)", re.IGNORECASE)
BLOCK_TIME = re.compile(r"\b(?P<time>\d{1,2}:\d{2}(?::\d{2})?\s*(?:AM|PM)?)", re.IGNORECASE)
BLOCK_ACCOUNT = re.compile(r"(?:Paid by|Credited to|Debited from)\s+(?P<account>[^|]+)", re.IGNORECASE)

CONFIDENCE = {
    "tight": 0.95,
    "compact": 0.9,
    "loose": 0.85,
    "iso": 0.95,
    "anchor": 0.75,
    "payment_app": 0.7,
}


@dataclass
class _Row:
    """A parsed candidate plus the reading it was not given, for ambiguity checks."""

    candidate: TransactionCandidate
    balance_sign: int = 1
    alternate_amount: float | None = None
    alternate_balance: float | None = None
    alternate_balance_sign: int = 1
    alternate_direction: TransactionType | None = None


def parse_date_token(token: str, date_order: Literal["dmy", "mdy"] = "dmy") -> str:
    """Canonicalize a numeric date token; a token that is not a real date is returned as-is."""
    token = token.strip()
    if re.fullmatch(ISO_DATE, token):
        try:
            return datetime.strptime(token, "%Y-%m-%d").date().isoformat()
        except ValueError:
            return token
    parts = re.split(r"[-/.]", token)
    if len(parts) == 3 and len(parts[2]) == 4 and all(part.isdigit() for part in parts):
        iso = to_iso_date(parts[0], parts[1], parts[2], date_order)
        if iso:
            return iso
    return token


def _parse_text_date(match: re.Match) -> str:
    raw = f"{match.group('day')} {match.group('month')[:3].title()} {match.group('year')}"
    try:
        return datetime.strptime(raw, "%d %b %Y").date().isoformat()
    except ValueError:
        return raw


def _amount(value: str) -> float | None:
    try:
        return abs(float(clean_amount_string(value)))
    except (ValueError, TypeError):
        return None


def _direction(marker: str | None) -> TransactionType | None:
    if not marker:
        return None
    return TransactionType.DEBIT if marker.lower() == "dr" else TransactionType.CREDIT


def _infer_direction(narration: str) -> TransactionType:
    return TransactionType.DEBIT if DEBIT_KEYWORDS.search(narration) else TransactionType.CREDIT


def _candidate(rule: str, date: str, narration: str, amount: float, direction: TransactionType,
               balance: float | None, raw: str, **extra) -> TransactionCandidate:
    return TransactionCandidate(
        date=date,
        narration=normalize_description(narration),
        amount=amount,
        debit_credit=direction,
        balance=balance,
        confidence=CONFIDENCE[rule],
        raw=raw,
        tier="regex",
        **extra,
    )


def _two_amount_row(rule: str, match: re.Match, profile: StatementProfile, line: str) -> _Row | None:
    first, second = _amount(match.group("amt1")), _amount(match.group("amt2"))
    if first is None or second is None:
        return None

    groups = match.groupdict()
    m1, m2 = groups.get("m1"), groups.get("m2")

    if profile.amount_position == "first":
        amount, amount_marker, balance, balance_marker = first, m1, second, m2
    else:
        amount, amount_marker, balance, balance_marker = second, m2, first, m1

    direction = _direction(amount_marker) or _infer_direction(match.group("narration"))
    balance_sign = -1 if balance_marker and balance_marker.lower() == "dr" else 1

    candidate = _candidate(
        rule,
        parse_date_token(match.group("date"), profile.date_order),
        match.group("narration"),
        amount,
        direction,
        balance,
        line,
        transaction_id=groups.get("ref"),
    )
    row = _Row(
        candidate,
        balance_sign,
        alternate_amount=balance,
        alternate_balance=amount,
        alternate_balance_sign=-1 if amount_marker and amount_marker.lower() == "dr" else 1,
        alternate_direction=_direction(balance_marker) or direction,
    )

    # A credit cannot leave a credit balance smaller than the credited amount
    if direction is TransactionType.CREDIT and balance_marker and balance_marker.lower() == "cr" and balance < amount:
        _flag_ambiguous(row, f"credit of {amount:.2f} exceeds resulting balance {balance:.2f}")

    return row


def _payment_app_row(line: str, previous: str | None) -> _Row | None:
    block = BLOCK.search(line)
    amount_match = BLOCK_AMOUNT.search(line)
    if not block or not amount_match:
        return None

    date_match = TEXT_DATE.search(line)
    if not date_match and previous and TEXT_DATE.fullmatch(previous.strip()):
        date_match = TEXT_DATE.search(previous)
    if not date_match:
        return None

    amount = _amount(amount_match.group("amount"))
    if amount is None:
        return None

    kind = block.group("kind").lower()
    direction = TransactionType.CREDIT if kind.startswith("received") else TransactionType.DEBIT
    txn_id = BLOCK_TXN_ID.search(line)
    time_match = BLOCK_TIME.search(line)
    account = BLOCK_ACCOUNT.search(line)

    candidate = _candidate(
        "payment_app",
        _parse_text_date(date_match),
        f"{block.group('kind')} {block.group('party')}",
        amount,
        direction,
        None,
        line,
        transaction_id=txn_id.group("id") if txn_id else None,
        time=time_match.group("time").strip() if time_match else None,
        account=normalize_description(account.group("account")) if account else None,
    )
    return _Row(candidate)


def _flag_ambiguous(row: _Row, reason: str) -> None:
    candidate = row.candidate
    if AMBIGUOUS_AMOUNT in candidate.flags:
        return
    candidate.flags.append(AMBIGUOUS_AMOUNT)
    candidate.confidence = min(candidate.confidence, AMBIGUOUS_CONFIDENCE)
    logger.warning(f"Ambiguous amount on {candidate.date} ({reason}): {candidate.raw[:80]}")


def _fits(previous_balance: float, amount: float, direction: TransactionType, balance: float) -> bool:
    delta = -amount if direction is TransactionType.DEBIT else amount
    return abs(previous_balance + delta - balance) <= BALANCE_TOLERANCE


def _check_balance_continuity(rows: list[_Row]) -> None:
    """Flag rows whose running balance contradicts the chosen reading but fits the swapped one."""
    previous: _Row | None = None
    for row in rows:
        current = row.candidate
        if previous is None or previous.candidate.balance is None or current.balance is None:
            previous = row
            continue
        if row.alternate_amount is None or current.debit_credit is None:
            previous = row
            continue

        prior_balance = previous.candidate.balance * previous.balance_sign
        chosen = _fits(prior_balance, current.amount, current.debit_credit, current.balance * row.balance_sign)
        swapped = _fits(
            prior_balance,
            row.alternate_amount,
            row.alternate_direction or current.debit_credit,
            row.alternate_balance * row.alternate_balance_sign,
        )
        if not chosen and swapped:
            _flag_ambiguous(row, "running balance fits the swapped reading")
        previous = row


def parse_transactions_with_stats(
    text: str, profile: StatementProfile | None = None, max_amount: float | None = None
) -> ParseResult:
    """
    Run the ordered line rules over statement text.

    Args:
        text: Raw or normalized statement text
        profile: Layout conventions (date order, amount position)
        max_amount: Upper bound for amounts read by the compact rule

    Returns:
        ParseResult whose transactions are TransactionCandidate objects
    """
    profile = profile or StatementProfile.from_settings()
    max_amount = max_amount if max_amount is not None else settings.max_transaction_amount

    lines = [line.strip() for line in text.split("\n")]
    result = ParseResult(transactions=[])
    rows: list[_Row] = []

    for i, line in enumerate(lines):
        if not line:
            continue
        result.total_rows_processed += 1
        previous = lines[i - 1] if i > 0 else None
        row: _Row | None = None

        match = TIGHT.match(line)
        if match:
            row = _two_amount_row("tight", match, profile, line)

        if row is None:
            match = COMPACT.match(line)
            if match:
                first, second = _amount(match.group("amt1")), _amount(match.group("amt2"))
                if not all(v is not None and validate_amount(v, max_val=max_amount) for v in (first, second)):
                    result.rows_skipped += 1
                    result.warnings.append(f"Discarded compact line with out-of-range amount: {line[:80]}")
                    continue
                row = _two_amount_row("compact", match, profile, line)

        if row is None:
            match = LOOSE.match(line)
            if match:
                row = _two_amount_row("loose", match, profile, line)

        if row is None:
            match = ISO_FIRST.match(line)
            if match:
                row = _two_amount_row("iso", match, profile, line)

        if row is None and previous is not None:
            match = ANCHOR.match(line)
            date_line = DATE_ONLY.match(previous)
            if match and date_line:
                amount = _amount(match.group("amt1"))
                if amount is not None:
                    row = _Row(
                        _candidate(
                            "anchor",
                            parse_date_token(date_line.group("date"), profile.date_order),
                            match.group("narration"),
                            amount,
                            _direction(match.group("m1")) or TransactionType.DEBIT,
                            None,
                            f"{previous} {line}",
                        )
                    )

        if row is None:
            row = _payment_app_row(line, previous)

        if row is None:
            logger.debug(f"No pattern matched: {line[:80]}")
            continue
        rows.append(row)

    _check_balance_continuity(rows)

    result.transactions = [row.candidate for row in rows]
    result.ambiguous_rows = sum(1 for row in rows if AMBIGUOUS_AMOUNT in row.candidate.flags)
    log_parse_result(result, "regex")
    return result


def parse_transactions(text: str, profile: StatementProfile | None = None) -> list[TransactionCandidate]:
    """Extract transaction candidates from statement text with the regex rules."""
    return parse_transactions_with_stats(text, profile).transactions
