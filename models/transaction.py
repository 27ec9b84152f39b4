"""
Transaction models: the fixed destination schema every import must reach.
"""

from datetime import date as calendar_date
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import Field, field_serializer, field_validator

from models.base import BaseSchema


class DestinationField(str, Enum):
    """Fields of the destination schema."""
    DATE = "date"
    DESCRIPTION = "description"
    AMOUNT = "amount"
    CATEGORY = "category"
    DOCUMENT_ID = "document_id"


REQUIRED_FIELDS: tuple[DestinationField, ...] = (
    DestinationField.DATE,
    DestinationField.DESCRIPTION,
    DestinationField.AMOUNT,
)


class TransactionRow(BaseSchema):
    """
    A validated, destination-shaped transaction.

    Produced by projecting a candidate row through a column mapping.
    Optional fields are absent (None), never empty strings.
    """

    date: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="Canonical date (YYYY-MM-DD)"
    )
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., description="Signed amount; negative for outflows")
    category: Optional[str] = None
    document_id: Optional[str] = None

    @field_validator("category", "document_id", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("date")
    @classmethod
    def date_must_exist(cls, v: str) -> str:
        try:
            calendar_date.fromisoformat(v)
        except ValueError:
            raise ValueError(f"{v} is not a calendar date")
        return v

    @field_validator("amount")
    @classmethod
    def amount_must_be_finite(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("amount must be a finite number")
        return v

    @field_serializer("amount", when_used="json")
    def amount_as_number(self, v: Decimal) -> float:
        return float(v)

    def to_record(self) -> dict:
        """Row as sent to the transaction store (absent fields omitted)."""
        record = {
            "date": self.date,
            "description": self.description,
            "amount": float(self.amount),
        }
        if self.category is not None:
            record["category"] = self.category
        if self.document_id is not None:
            record["document_id"] = self.document_id
        return record


class CommitRequest(BaseSchema):
    """Already validated rows submitted for bulk insertion."""

    rows: list[TransactionRow] = Field(..., min_length=1)


class CommitResponse(BaseSchema):
    """Result of a bulk insert."""

    success: bool = True
    inserted: int = Field(..., ge=0)
