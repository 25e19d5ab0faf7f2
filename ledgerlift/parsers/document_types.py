"""Pydantic models for LLM-based statement parsing."""

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ledgerlift.config import settings


@dataclass(frozen=True)
class StatementProfile:
    """Layout conventions of a statement family."""

    name: str = "default"
    date_order: Literal["dmy", "mdy"] = "dmy"
    amount_position: Literal["first", "last"] = "first"

    @classmethod
    def from_settings(cls) -> "StatementProfile":
        return cls(date_order=settings.date_order, amount_position=settings.amount_position)


class RawAITransaction(BaseModel):
    """Raw transaction data returned by the LLM, before any repair."""

    model_config = ConfigDict(extra="ignore")

    date: str | None = None
    description: str | None = None
    amount: float | str | None = None
    type: str | None = None
    debit_credit: str | None = None
    time: str | None = None
    transaction_id: str | None = None
    account: str | None = None
    balance: float | str | None = None
    raw: str | None = None
    confidence: float | str | None = None
    page: int | float | str | None = None  # 1-based image position within a vision request

    @field_validator(
        "date", "description", "type", "debit_credit", "time", "transaction_id", "account", "raw", mode="before"
    )
    @classmethod
    def _stringify(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @model_validator(mode="before")
    @classmethod
    def _accept_alternate_keys(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for alias, name in (("narration", "description"), ("transactionId", "transaction_id")):
            if name not in data and alias in data:
                data[name] = data[alias]
        return data


class ExtractedBatch(BaseModel):
    """LLM response wrapper: {"chunkId": ..., "transactions": [...]}."""

    model_config = ConfigDict(extra="ignore")

    chunkId: str | None = None
    transactions: list[RawAITransaction] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_list(cls, data):
        # Some models answer with a bare array instead of the wrapper object
        if isinstance(data, list):
            return {"transactions": data}
        return data
