"""
Base schema and mixins shared by import models.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, Optional


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Strings are trimmed on input (header names, keys, cell edits) and
    assignments are re-validated, so a model never holds a value its
    constraints would reject.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )

    def to_json_dict(self) -> dict[str, Any]:
        """JSON-safe dict (enums as values, Decimal as str) for error details."""
        return self.model_dump(mode="json")


class TimestampMixin(BaseModel):
    """Creation and last-change times of an import session."""
    created_at: datetime
    updated_at: Optional[datetime] = None
