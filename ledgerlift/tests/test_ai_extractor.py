"""Tests for the AI-assisted extraction tier (text chunks and vision)."""

from unittest.mock import AsyncMock, patch

import pytest

from ledgerlift.models import TextChunk, TransactionCandidate, TransactionType
from ledgerlift.parsers.ai_extractor import (
    VISION_PROMPT,
    build_chunk_prompt,
    canonicalize_date,
    coerce_transaction_type,
    dedup_ai_candidates,
    extract_from_chunk,
    extract_from_chunks,
    extract_with_vision,
    repair_ocr_amount,
    to_candidate,
)
from ledgerlift.parsers.document_types import ExtractedBatch, RawAITransaction, StatementProfile
from ledgerlift.parsers.llm_client import ParsingError

DMY = StatementProfile(date_order="dmy")


def make_chunk(index: int, text: str = "01-08-2025 UPI/A 10.00") -> TextChunk:
    return TextChunk(chunk_id=f"chunk_{index}_test", chunk_index=index, text=text, start=0, end=len(text))


def batch(*transactions: dict) -> ExtractedBatch:
    return ExtractedBatch.model_validate({"transactions": list(transactions)})


class TestRepairOcrAmount:
    """Test repair of OCR-damaged amounts."""

    def test_letter_o_becomes_zero(self):
        """The classic OCR confusion of O and 0 is undone."""
        assert repair_ocr_amount("7O0.5O") == pytest.approx(700.50)

    def test_currency_and_separators(self):
        assert repair_ocr_amount("₹1,2l0.00") == pytest.approx(1210.00)
        assert repair_ocr_amount("Rs. 99") == 99.0

    def test_numbers_pass_through_unsigned(self):
        assert repair_ocr_amount(-42.5) == 42.5

    def test_garbage_is_zero(self):
        """Unrecoverable values become zero for the validator to reject."""
        assert repair_ocr_amount("n/a") == 0.0
        assert repair_ocr_amount(None) == 0.0

    def test_multiple_dots_keep_last_as_decimal(self):
        assert repair_ocr_amount("1.234.50") == pytest.approx(1234.50)


class TestCanonicalizeDate:
    """Test date post-processing of AI output."""

    def test_numeric_dmy(self):
        assert canonicalize_date("01-08-2025", DMY) == "2025-08-01"

    def test_iso_is_kept(self):
        assert canonicalize_date("2025-08-01", DMY) == "2025-08-01"

    def test_text_date(self):
        """Payment-app dates like "30 Nov, 2025" are re-parsed."""
        assert canonicalize_date("30 Nov, 2025", DMY) == "2025-11-30"

    def test_unparseable_is_returned_unchanged(self):
        assert canonicalize_date("yesterday-ish", DMY) == "yesterday-ish"

    def test_month_name_with_dashes(self):
        """Dash-separated dates with a month name are not numeric tokens."""
        assert canonicalize_date("01-Nov-2025", DMY) == "2025-11-01"
        assert canonicalize_date("15/Aug/2025", DMY) == "2025-08-15"

    @pytest.mark.parametrize("value", ["12", "Tuesday", "Nov", "30 Nov", "Nov 2025"])
    def test_incomplete_date_is_returned_unchanged(self, value):
        """Missing year, month or day is never filled in from today."""
        assert canonicalize_date(value, DMY) == value

    def test_empty(self):
        assert canonicalize_date(None, DMY) == ""


class TestToCandidate:
    """Test the AI record adapter."""

    def test_builds_candidate(self):
        raw = RawAITransaction.model_validate(
            {
                "date": "30-11-2025",
                "narration": "  UPI/Swiggy  ",
                "amount": "7O0.5O",
                "type": "Dr",
                "balance": "1,000.00",
                "confidence": 0.9,
            }
        )
        candidate = to_candidate(raw, "llm", DMY, page_index=0)

        assert candidate.date == "2025-11-30"
        assert candidate.narration == "UPI/Swiggy"
        assert candidate.amount == pytest.approx(700.50)
        assert candidate.debit_credit == TransactionType.DEBIT
        assert candidate.balance == 1000.0
        assert candidate.confidence == 0.9
        assert candidate.tier == "llm"

    def test_default_confidence_per_tier(self):
        raw = RawAITransaction(date="2025-08-01", description="A", amount=10)
        assert to_candidate(raw, "llm", DMY).confidence == 0.7
        assert to_candidate(raw, "vision", DMY).confidence == 0.9

    def test_confidence_is_clamped(self):
        raw = RawAITransaction(date="2025-08-01", description="A", amount=10, confidence="7")
        assert to_candidate(raw, "llm", DMY).confidence == 1.0

    def test_empty_record_is_dropped(self):
        assert to_candidate(RawAITransaction(), "llm", DMY) is None

    def test_transaction_type_words(self):
        assert coerce_transaction_type("credit") == TransactionType.CREDIT
        assert coerce_transaction_type("Received") == TransactionType.CREDIT
        assert coerce_transaction_type("debit") == TransactionType.DEBIT
        assert coerce_transaction_type(None) == TransactionType.DEBIT


class TestDedupAiCandidates:
    """Test in-tier duplicate removal."""

    def test_overlapping_chunks_are_deduplicated(self):
        """The same row seen by two overlapping chunks is kept once."""
        a = TransactionCandidate(date="2025-08-01", narration="UPI/Swiggy/98765", amount=320.0, tier="llm")
        b = TransactionCandidate(date="2025-08-01", narration="UPI/SWIGGY/98765", amount=320.0, tier="llm")
        c = TransactionCandidate(date="2025-08-02", narration="UPI/Swiggy/98765", amount=320.0, tier="llm")
        assert dedup_ai_candidates([a, b, c], prefix_length=20) == [a, c]


class TestPrompts:
    """Test prompt construction."""

    def test_chunk_prompt_carries_chunk(self):
        chunk = make_chunk(3, "02-08-2025 NEFT/ACME 5,000.00")
        prompt = build_chunk_prompt(chunk)
        assert "chunk_3_test" in prompt
        assert "02-08-2025 NEFT/ACME 5,000.00" in prompt
        assert "NEVER the running balance" in prompt

    def test_vision_prompt_asks_for_json(self):
        assert '"transactions"' in VISION_PROMPT


@pytest.mark.asyncio
class TestExtractFromChunks:
    """Test concurrent chunk extraction."""

    async def test_collects_candidates_from_all_chunks(self):
        responses = [
            batch({"date": "01-08-2025", "description": "UPI/A", "amount": 10, "type": "debit"}),
            batch({"date": "02-08-2025", "description": "NEFT/B", "amount": "2,000", "type": "credit"}),
        ]
        with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=responses)):
            extraction = await extract_from_chunks([make_chunk(0), make_chunk(1)], DMY, concurrency=1)

        assert extraction.units_processed == 2
        assert extraction.errors == []
        assert [c.amount for c in extraction.candidates] == [10.0, 2000.0]
        assert extraction.candidates[1].debit_credit == TransactionType.CREDIT

    async def test_failed_chunk_is_recorded_and_skipped(self):
        """One failing chunk does not sink the others."""
        responses = [
            ParsingError("LLM returned invalid JSON"),
            batch({"date": "02-08-2025", "description": "NEFT/B", "amount": 20}),
        ]
        with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=responses)):
            extraction = await extract_from_chunks([make_chunk(0), make_chunk(1)], DMY, concurrency=1)

        assert len(extraction.candidates) == 1
        assert len(extraction.errors) == 1
        assert "chunk 0" in extraction.errors[0]

    async def test_overlap_duplicates_removed(self):
        """The same transaction returned by two chunks counts once."""
        row = {"date": "01-08-2025", "description": "UPI/A", "amount": 10}
        with patch(
            "ledgerlift.parsers.ai_extractor.llm_extract_json",
            new=AsyncMock(side_effect=[batch(row), batch(row)]),
        ):
            extraction = await extract_from_chunks([make_chunk(0), make_chunk(1)], DMY)

        assert len(extraction.candidates) == 1

    async def test_month_name_dates_do_not_abort_extraction(self):
        row = {"date": "01-Nov-2025", "description": "UPI/Swiggy", "amount": 320, "type": "debit"}
        with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(return_value=batch(row))):
            extraction = await extract_from_chunks([make_chunk(0)], DMY)

        assert extraction.errors == []
        [candidate] = extraction.candidates
        assert candidate.date == "2025-11-01"

    async def test_record_that_fails_to_convert_is_skipped(self):
        """A bad record is dropped on its own; the rest of the chunk survives."""
        rows = batch(
            {"date": "broken", "description": "UPI/A", "amount": 10},
            {"date": "02-08-2025", "description": "NEFT/B", "amount": 20},
        )

        def flaky_canonicalize(value, profile=None):
            if value == "broken":
                raise ValueError("unreadable date")
            return canonicalize_date(value, profile)

        with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(return_value=rows)):
            with patch("ledgerlift.parsers.ai_extractor.canonicalize_date", side_effect=flaky_canonicalize):
                extraction = await extract_from_chunks([make_chunk(0)], DMY)

        assert extraction.errors == []
        assert [c.narration for c in extraction.candidates] == ["NEFT/B"]

    async def test_blank_chunk_skips_llm(self):
        with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock()) as call:
            assert await extract_from_chunk(make_chunk(0, "   "), DMY) == []
        call.assert_not_awaited()

    async def test_single_chunk_failure_is_empty(self):
        with patch(
            "ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=ParsingError("bad"))
        ):
            assert await extract_from_chunk(make_chunk(0), DMY) == []


@pytest.mark.asyncio
class TestExtractWithVision:
    """Test batched vision extraction."""

    async def test_batches_run_sequentially_with_delay(self):
        """12 pages in batches of 5 mean 3 calls and 2 pauses, none after the last."""
        pages = [f"png-{i}".encode() for i in range(12)]
        responses = [
            batch({"date": "30 Nov, 2025", "description": "Swiggy", "amount": 250, "type": "debit"}),
            batch(),
            batch({"date": "29 Nov, 2025", "description": "Ravi Kumar", "amount": "1,2O0", "type": "credit"}),
        ]
        with patch("ledgerlift.parsers.ai_extractor.render_pages_png", return_value=pages):
            with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=responses)) as call:
                with patch("ledgerlift.parsers.ai_extractor.asyncio.sleep", new=AsyncMock()) as sleep:
                    extraction = await extract_with_vision(b"%PDF", DMY, batch_size=5, batch_delay=2.5)

        assert call.await_count == 3
        assert [len(c.kwargs["images"]) for c in call.await_args_list] == [5, 5, 2]
        assert all(c.kwargs["max_retries"] == 1 for c in call.await_args_list)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.5)

        assert extraction.page_count == 12
        assert extraction.units_processed == 3
        first, second = extraction.candidates
        assert first.tier == "vision"
        assert first.date == "2025-11-30"
        assert first.confidence == 0.9
        assert first.page_index == 0
        assert second.amount == 1200.0
        assert second.debit_credit == TransactionType.CREDIT
        assert second.page_index == 10

    async def test_failed_batch_is_not_retried(self):
        """A failing batch is recorded once and the next batch still runs."""
        pages = [b"p1", b"p2", b"p3"]
        responses = [ParsingError("timeout"), batch({"date": "2025-11-30", "description": "A", "amount": 5})]
        with patch("ledgerlift.parsers.ai_extractor.render_pages_png", return_value=pages):
            with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=responses)) as call:
                with patch("ledgerlift.parsers.ai_extractor.asyncio.sleep", new=AsyncMock()):
                    extraction = await extract_with_vision(b"%PDF", DMY, batch_size=2, batch_delay=0)

        assert call.await_count == 2
        assert len(extraction.errors) == 1
        assert "pages 1-2" in extraction.errors[0]
        assert len(extraction.candidates) == 1

    async def test_month_name_dates_keep_every_batch(self):
        pages = [b"p1", b"p2", b"p3"]
        responses = [
            batch({"date": "30-Nov-2025", "description": "Swiggy", "amount": 250, "type": "debit"}),
            batch({"date": "29-Nov-2025", "description": "Ravi Kumar", "amount": 1200, "type": "credit"}),
        ]
        with patch("ledgerlift.parsers.ai_extractor.render_pages_png", return_value=pages):
            with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=responses)):
                with patch("ledgerlift.parsers.ai_extractor.asyncio.sleep", new=AsyncMock()):
                    extraction = await extract_with_vision(b"%PDF", DMY, batch_size=2, batch_delay=0)

        assert extraction.errors == []
        assert [c.date for c in extraction.candidates] == ["2025-11-30", "2025-11-29"]

    async def test_page_within_batch_sets_page_index(self):
        """The model's 1-based page is offset by the batch start; bad pages fall back to it."""
        pages = [f"png-{i}".encode() for i in range(7)]
        responses = [
            batch({"date": "2025-11-30", "description": "A", "amount": 5, "page": 9}),
            batch(
                {"date": "2025-11-29", "description": "B", "amount": 6, "page": 2},
                {"date": "2025-11-28", "description": "C", "amount": 7},
            ),
        ]
        with patch("ledgerlift.parsers.ai_extractor.render_pages_png", return_value=pages):
            with patch("ledgerlift.parsers.ai_extractor.llm_extract_json", new=AsyncMock(side_effect=responses)):
                with patch("ledgerlift.parsers.ai_extractor.asyncio.sleep", new=AsyncMock()):
                    extraction = await extract_with_vision(b"%PDF", DMY, batch_size=5, batch_delay=0)

        assert [c.page_index for c in extraction.candidates] == [0, 6, 5]
