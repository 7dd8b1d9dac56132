"""
Notification Model.

One row per logical notification. Status changes only through
NotificationService.update_status, which enforces the transition table and
writes with a compare-and-set on (status, attempt_count).
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from modules.notifier.models.base import Base, TimestampMixin, UUIDMixin, string_enum


class NotificationStatus(StrEnum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    BOUNCED = "BOUNCED"
    CANCELLED = "CANCELLED"


class NotificationChannel(StrEnum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    IN_APP = "IN_APP"


class NotificationType(StrEnum):
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"
    WELCOME = "WELCOME"
    SECURITY_ALERT = "SECURITY_ALERT"
    SYSTEM = "SYSTEM"
    MARKETING = "MARKETING"


class NotificationPriority(StrEnum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Notification(UUIDMixin, TimestampMixin, Base):
    """Persistent record of a notification and its delivery lifecycle."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_status_next_retry_at", "status", "next_retry_at"),
        Index("ix_notifications_status_scheduled_for", "status", "scheduled_for"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(string_enum(NotificationType), nullable=False)
    channel: Mapped[NotificationChannel] = mapped_column(
        string_enum(NotificationChannel),
        default=NotificationChannel.EMAIL,
        nullable=False,
    )
    priority: Mapped[NotificationPriority] = mapped_column(
        string_enum(NotificationPriority),
        default=NotificationPriority.NORMAL,
        nullable=False,
    )
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    template_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("notification_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    status: Mapped[NotificationStatus] = mapped_column(
        string_enum(NotificationStatus),
        default=NotificationStatus.PENDING,
        nullable=False,
        index=True,
    )
    job_id: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    queued_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    processing_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_stack: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.type}, status={self.status})>"
