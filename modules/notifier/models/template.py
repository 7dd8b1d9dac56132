"""
Notification Template Model.

Versioned templates grouped by code. A partial unique index keeps at most
one active version per code.
"""

from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from modules.notifier.models.base import Base, TimestampMixin, UUIDMixin, string_enum
from modules.notifier.models.notification import NotificationChannel, NotificationType


class NotificationTemplate(UUIDMixin, TimestampMixin, Base):
    """A single version of a named template."""

    __tablename__ = "notification_templates"
    __table_args__ = (
        Index(
            "uq_notification_templates_active_code",
            "code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_notification_templates_code_version", "code", "version", unique=True),
    )

    code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    channel: Mapped[NotificationChannel] = mapped_column(
        string_enum(NotificationChannel),
        nullable=False,
    )
    type: Mapped[NotificationType] = mapped_column(
        string_enum(NotificationType),
        nullable=False,
    )
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    body_template: Mapped[str] = mapped_column(Text, nullable=False)
    variables: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationTemplate(code={self.code!r}, version={self.version}, active={self.is_active})>"
