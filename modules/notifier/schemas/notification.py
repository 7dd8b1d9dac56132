"""
Notification Schemas.

Pydantic schemas for notification API request/response validation.
The dispatch request body is the event envelope itself; see
modules.notifier.events.schemas.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from modules.notifier.models.notification import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)


class DispatchOptions(BaseModel):
    """Optional dispatch parameters, passed as query parameters."""

    priority: NotificationPriority = NotificationPriority.NORMAL
    scheduled_for: datetime | None = None


class DispatchResult(BaseModel):
    """Outcome of a dispatch request."""

    notification_id: str
    status: NotificationStatus
    mode: str = Field(description="async (queued), sync (inline fallback), scheduled or skipped")
    message_id: str | None = None
    warning: str | None = None
    error: str | None = None


class StatusUpdate(BaseModel):
    """Manual status change (e.g. delivery webhook relays)."""

    status: NotificationStatus
    external_id: str | None = None
    error_code: str | None = Field(default=None, max_length=64)
    error_message: str | None = None
    retryable: bool = True
    override_attempt_limit: bool = False


class NotificationResponse(BaseModel):
    """Schema for a notification in API responses."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str
    type: NotificationType
    channel: NotificationChannel
    priority: NotificationPriority
    recipient: str
    subject: str | None
    template_id: str | None
    payload: dict[str, Any]
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_")
    status: NotificationStatus
    job_id: str | None
    external_id: str | None
    attempt_count: int
    max_attempts: int
    next_retry_at: datetime | None
    scheduled_for: datetime | None
    queued_at: datetime | None
    processing_at: datetime | None
    last_attempt_at: datetime | None
    sent_at: datetime | None
    delivered_at: datetime | None
    failed_at: datetime | None
    error_code: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime


class NotificationStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_channel: dict[str, int]
    by_type: dict[str, int]


class CleanupResult(BaseModel):
    deleted: int
    days: int
