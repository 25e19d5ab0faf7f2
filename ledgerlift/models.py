"""Data models for ledgerlift."""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class DocumentKind(str, Enum):
    """Document classification produced by the source detector."""

    STRUCTURED_TEXT = "structured-text"
    IMAGE_HEAVY = "image-heavy"


class AcquisitionMethod(str, Enum):
    """How the raw text of a document was obtained."""

    STRUCTURAL = "structural"
    OCR = "ocr"


class PipelineMethod(str, Enum):
    """Extraction strategy that produced the emitted transactions."""

    REGEX = "regex"
    LLM = "llm"
    HYBRID = "hybrid"
    VISION = "vision"


class TransactionType(str, Enum):
    """Direction of money movement. Amounts are never signed."""

    DEBIT = "debit"
    CREDIT = "credit"

    @property
    def entry_type(self) -> Literal["expense", "income"]:
        return "expense" if self is TransactionType.DEBIT else "income"

    @property
    def marker(self) -> Literal["Dr", "Cr"]:
        return "Dr" if self is TransactionType.DEBIT else "Cr"


class CategorySource(str, Enum):
    """Strategy that produced a category assignment."""

    RULE = "rule"
    LLM = "llm"
    LEARNING = "learning"
    RECURRENCE = "recurrence"
    FALLBACK = "fallback"


class RawDocument(BaseModel):
    """An uploaded statement, alive for the duration of one pipeline run."""

    contents: bytes
    kind: DocumentKind | None = None

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.contents).hexdigest()


class ExtractionResult(BaseModel):
    """Raw text obtained from a document by the acquisition layer."""

    text: str
    method: AcquisitionMethod
    page_count: int = 0


class TextChunk(BaseModel):
    """A positional window of normalized text sent to the AI tier."""

    chunk_id: str
    chunk_index: int
    text: str
    page_index: int = 0
    start: int = 0  # Offset of the first character in the source text
    end: int = 0  # Offset one past the last character


class CategoryAttempt(BaseModel):
    """One categorization strategy tried for a transaction."""

    source: CategorySource
    category_id: str | None = None
    reason: str
    score: float = 0.0


class CategoryAssignment(BaseModel):
    """Final category plus the audit trail of every strategy tried."""

    category_id: str
    source: CategorySource
    confidence: float
    attempts: list[CategoryAttempt] = Field(default_factory=list)


class TransactionCandidate(BaseModel):
    """A transaction extracted by any tier, in the one shape every tier produces."""

    date: str  # YYYY-MM-DD once canonicalized, the raw token otherwise
    narration: str
    amount: float  # Always unsigned, direction lives in debit_credit
    debit_credit: TransactionType | None = None
    balance: float | None = None  # Running balance, never the amount
    confidence: float = 0.5
    raw: str = ""
    transaction_id: str | None = None
    account: str | None = None
    time: str | None = None
    tier: Literal["regex", "llm", "vision"] = "regex"
    page_index: int | None = None
    flags: list[str] = Field(default_factory=list)
    category: CategoryAssignment | None = None


class ValidationResult(BaseModel):
    """Structural check result for a candidate."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    needs_manual_review: bool = False


class ValidatedTransaction(TransactionCandidate):
    """A categorized candidate paired with its validation result."""

    validation: ValidationResult


class Category(BaseModel):
    """A category available to a user (user_id None means global)."""

    id: str
    name: str
    type: Literal["expense", "income"] | None = None
    user_id: str | None = None

    class Config:
        from_attributes = True


class LearningRecord(BaseModel):
    """A narration pattern the user has manually re-categorized before."""

    user_id: str
    pattern: str
    category_id: str
    hits: int = 1
    last_used: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True


class PipelineMetadata(BaseModel):
    """Counts and provenance explaining how a document was processed."""

    total_found: int = 0
    high_confidence_count: int = 0
    low_confidence_count: int = 0
    chunks_parsed: int = 0
    time_taken_ms: int = 0
    method: PipelineMethod = PipelineMethod.REGEX
    saved_count: int = 0
    document_kind: DocumentKind | None = None
    acquisition_method: AcquisitionMethod | None = None
    page_count: int = 0
    confidence: float = 0.0  # Batch confidence, a function of extraction density
    errors: list[str] = Field(default_factory=list)


class PipelineResult(BaseModel):
    """Everything the pipeline hands back for one document."""

    transactions: list[ValidatedTransaction] = Field(default_factory=list)
    metadata: PipelineMetadata = Field(default_factory=PipelineMetadata)
