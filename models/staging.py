"""
Staging models for out-of-band import payloads.

Staged imports are transient and single-use: written by a producer
(extraction webhook, Dropbox webhook) and consumed at most once.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import Field

from models.base import BaseSchema


class StagedImport(BaseSchema):
    """A payload waiting under its correlation key."""

    key: str
    payload: list[dict[str, Any]]
    created_at: datetime
    filename: Optional[str] = None
    source_url: Optional[str] = None


class StagePutRequest(BaseSchema):
    """
    Write-back body from the extraction service.

    Called by untrusted network callers: only the shape is checked.
    """

    key: str = Field(..., min_length=1, max_length=200, description="Correlation key")
    rows: list[dict[str, Any]] = Field(..., description="Extracted rows (list of objects)")


class StagePutResponse(BaseSchema):
    success: bool = True
    key: str
    count: int


class StageTakeResponse(BaseSchema):
    """`data` is null when nothing has been staged under the key yet."""

    data: Optional[list[dict[str, Any]]] = None


class DropboxWebhookRequest(BaseSchema):
    """Dropbox share link to a JSON export of transactions."""

    dropbox_link: str = Field(..., min_length=1)
    filename: Optional[str] = None
    key: Optional[str] = Field(
        None,
        max_length=200,
        description="Correlation key; generated when omitted"
    )


class EvictResponse(BaseSchema):
    evicted_count: int
    message: str
