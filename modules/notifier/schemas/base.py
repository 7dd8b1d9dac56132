"""
Base Schemas.

Response envelopes shared by every endpoint:

    {"success": true,  "data": ..., "warning": null, "metadata": {...}}
    {"success": false, "data": null, "error": {"code": ..., "message": ...}, "metadata": {...}}

`warning` is set when a request was served in a degraded way, e.g. a
dispatch that was processed synchronously because the queue was down
(whether the inline send succeeded or not).
"""

import math
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from modules.notifier.core.utils import utc_now

DataT = TypeVar("DataT")


class ResponseMetadata(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)
    request_id: str | None = None


class ErrorDetail(BaseModel):
    code: str = Field(description="Stable machine-readable code, e.g. NOTIF_INVALID_TRANSITION")
    message: str
    details: dict[str, Any] | None = None


class ApiResponse(BaseModel, Generic[DataT]):
    """Successful single-object response."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = True
    data: DataT | None = None
    error: ErrorDetail | None = None
    warning: str | None = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class ErrorResponse(BaseModel):
    success: bool = False
    data: None = None
    error: ErrorDetail
    warning: str | None = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class PaginationInfo(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class PaginatedResponse(BaseModel, Generic[DataT]):
    """Page-number paginated list."""

    success: bool = True
    data: list[DataT]
    error: None = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    pagination: PaginationInfo

    @classmethod
    def from_items(
        cls,
        items: Sequence[Any],
        convert: Callable[[Any], DataT],
        *,
        total: int,
        page: int,
        limit: int,
        request_id: str | None = None,
    ) -> "PaginatedResponse[DataT]":
        return cls(
            data=[convert(item) for item in items],
            pagination=PaginationInfo(
                total=total,
                page=page,
                limit=limit,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
            metadata=ResponseMetadata(request_id=request_id),
        )
