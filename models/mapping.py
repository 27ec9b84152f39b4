"""
Column mapping and validation models.

A mapping set pairs destination fields with source headers. Validation
reports form-level problems (the mapping itself) separately from
row-level problems (the data).
"""

from typing import Any, Optional
from pydantic import Field

from models.base import BaseSchema
from models.transaction import DestinationField, TransactionRow


class ColumnMapping(BaseSchema):
    """One destination field mapped to zero-or-one source header."""

    destination: DestinationField
    source: Optional[str] = Field(
        None,
        description="Source column header; None leaves the field unmapped"
    )


class FormError(BaseSchema):
    """Problem with the mapping set; blocks projection of every row."""

    code: str = Field(..., description="REQUIRED_FIELD_UNMAPPED or DUPLICATE_DESTINATION")
    field: Optional[DestinationField] = None
    message: str


class RowError(BaseSchema):
    """Problem with a single row's data."""

    row: int = Field(..., ge=2, description="Human row number (index + 2 for the header row)")
    field: DestinationField
    message: str
    value: Optional[str] = Field(None, description="Offending raw value, if any")


class ValidationResult(BaseSchema):
    """Outcome of validating a row set against a mapping set."""

    form_errors: list[FormError] = Field(default_factory=list)
    row_errors: list[RowError] = Field(default_factory=list)
    rows: list[TransactionRow] = Field(
        default_factory=list,
        description="Rows that passed validation, projected to the destination schema"
    )
    invalid_rows: list[int] = Field(
        default_factory=list,
        description="Human row numbers excluded from commit until fixed"
    )
    total_rows: int = 0

    @property
    def can_commit(self) -> bool:
        """Commit is blocked while any error exists."""
        return not self.form_errors and not self.row_errors and self.total_rows > 0

    def to_dict(self) -> dict:
        data = self.to_json_dict()
        data["can_commit"] = self.can_commit
        return data


class ValidateRequest(BaseSchema):
    """Rows plus the user's mapping set, submitted for validation."""

    rows: list[dict[str, Any]] = Field(..., description="Candidate rows: source header -> raw value")
    mappings: list[ColumnMapping]


class CSVPreviewResponse(BaseSchema):
    """Parsed CSV with the proposed mapping, ready for the mapping form."""

    filename: Optional[str] = None
    headers: list[str]
    rows: list[dict[str, str]]
    total_rows: int
    mappings: list[ColumnMapping]
