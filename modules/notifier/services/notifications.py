"""
Notification Lifecycle Service.

The authoritative state machine for Notification records.

    PENDING ──► QUEUED ──► PROCESSING ──► SENT ──► DELIVERED
       │           │            │            └──► BOUNCED
       │           │            ├──► FAILED ──► QUEUED / PROCESSING (budget left)
       │           │            └──► BOUNCED
       └───────────┴──► CANCELLED

Every transition is a compare-and-set on (status, attempt_count): the row is
only written if nobody changed it since it was read. A lost race re-reads the
row and re-evaluates the transition, so concurrent PROCESSING transitions
each count exactly one attempt.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.exceptions import (
    AttemptsExhaustedError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from modules.notifier.core.utils import utc_now
from modules.notifier.models.notification import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from modules.notifier.repositories.notification import NotificationFilters, NotificationRepository
from modules.notifier.services.base import BaseService

S = NotificationStatus

ALLOWED_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    S.QUEUED: frozenset({S.PENDING, S.FAILED}),
    S.PROCESSING: frozenset({S.PENDING, S.QUEUED, S.PROCESSING, S.FAILED}),
    S.SENT: frozenset({S.PROCESSING}),
    S.DELIVERED: frozenset({S.SENT}),
    S.FAILED: frozenset({S.PROCESSING}),
    S.BOUNCED: frozenset({S.PROCESSING, S.SENT}),
    S.CANCELLED: frozenset({S.PENDING, S.QUEUED}),
}
"""Target status -> statuses it may be entered from."""

# Entering these from FAILED spends retry budget
BUDGETED_FROM_FAILED = frozenset({S.QUEUED, S.PROCESSING})

CAS_MAX_TRIES = 5


@dataclass
class StatusContext:
    """Data carried by a status transition."""

    job_id: str | None = None
    external_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_stack: str | None = None
    next_retry_at: datetime | None = None
    retryable: bool = True
    override_attempt_limit: bool = False


class NotificationService(BaseService):
    """Records, transitions and queries notifications."""

    def __init__(
        self,
        session: AsyncSession,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
        page_size: int = 100,
    ) -> None:
        super().__init__(session)
        self.repo = NotificationRepository(session)
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.page_size = page_size

    # =========================================================================
    # Creation and reads
    # =========================================================================

    async def create(
        self,
        *,
        user_id: str,
        type: NotificationType,
        recipient: str,
        payload: dict[str, Any],
        channel: NotificationChannel = NotificationChannel.EMAIL,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        subject: str | None = None,
        template_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        job_id: str | None = None,
        scheduled_for: datetime | None = None,
        max_attempts: int | None = None,
    ) -> Notification:
        """Create a PENDING notification."""
        self._validate_required({"user_id": user_id, "recipient": recipient}, ["user_id", "recipient"])

        notification = await self._execute_db_operation(
            "create_notification",
            self.repo.create(
                user_id=user_id,
                type=type,
                channel=channel,
                priority=priority,
                recipient=recipient,
                subject=subject,
                template_id=template_id,
                payload=payload,
                metadata_=metadata,
                job_id=job_id,
                scheduled_for=scheduled_for,
                status=S.PENDING,
                max_attempts=max_attempts or self.max_attempts,
            ),
        )
        self._log_operation(
            "Notification created",
            notification_id=notification.id,
            type=str(type),
            job_id=job_id,
        )
        return notification

    async def get(self, notification_id: str) -> Notification:
        """Read the current row, bypassing anything cached in this session."""
        record = await self.repo.get_fresh(notification_id)
        if record is None:
            raise NotFoundError(f"Notification {notification_id} not found", code="NOTIF_NOT_FOUND")
        return record

    async def find_by_job_id(self, job_id: str) -> Notification | None:
        return await self.repo.find_by_job_id(job_id)

    async def list_notifications(
        self,
        filters: NotificationFilters | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Page through notifications, newest first."""
        filters = filters or NotificationFilters()
        page = max(1, page)
        limit = max(1, limit)
        items = await self.repo.list_filtered(filters, limit=limit, offset=(page - 1) * limit)
        total = await self.repo.count_filtered(filters)
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    async def find_retryable(self, limit: int | None = None) -> list[Notification]:
        """FAILED records with attempts left and a due (or unset) retry time."""
        return await self.repo.find_retryable(utc_now(), limit or self.page_size)

    async def find_scheduled_ready(self, limit: int | None = None) -> list[Notification]:
        """PENDING records whose scheduled time has passed."""
        return await self.repo.find_scheduled_ready(utc_now(), limit or self.page_size)

    async def get_stats(self, user_id: str | None = None) -> dict[str, Any]:
        return {
            "total": await self.repo.count_for_user(user_id),
            "by_status": await self.repo.count_by(Notification.status, user_id),
            "by_channel": await self.repo.count_by(Notification.channel, user_id),
            "by_type": await self.repo.count_by(Notification.type, user_id),
        }

    async def delete_older_than(self, days: int) -> int:
        """Purge terminal, non-retryable records created more than `days` ago."""
        if days < 0:
            raise ValidationError("days must be zero or positive", details={"days": days})
        cutoff = utc_now() - timedelta(days=days)
        deleted = await self._execute_db_operation(
            "delete_older_than",
            self.repo.delete_terminal_before(cutoff),
        )
        self._log_operation("Old notifications purged", days=days, deleted=deleted)
        return deleted

    # =========================================================================
    # Transitions
    # =========================================================================

    def _retry_delay(self, attempt_count: int) -> timedelta:
        exponent = max(0, attempt_count - 1)
        return timedelta(seconds=self.retry_backoff_seconds * (2 ** exponent))

    def _transition_values(
        self,
        record: Notification,
        new_status: NotificationStatus,
        ctx: StatusContext,
    ) -> dict[str, Any]:
        """Check the transition and build the column values it writes."""
        current = NotificationStatus(record.status)
        if current not in ALLOWED_TRANSITIONS[new_status]:
            raise InvalidTransitionError(record.id, current, new_status)

        budget_left = record.attempt_count < record.max_attempts
        if new_status in BUDGETED_FROM_FAILED and not ctx.override_attempt_limit:
            if (current == S.FAILED or new_status == S.PROCESSING) and not budget_left:
                raise AttemptsExhaustedError(record.id, record.attempt_count, record.max_attempts)

        now = utc_now()
        values: dict[str, Any] = {"status": new_status}

        if new_status == S.QUEUED:
            values.update(queued_at=now, next_retry_at=None)
            values["job_id"] = ctx.job_id or record.job_id
        elif new_status == S.PROCESSING:
            values.update(
                processing_at=now,
                last_attempt_at=now,
                attempt_count=record.attempt_count + 1,
            )
        elif new_status == S.SENT:
            values.update(sent_at=now, external_id=ctx.external_id, next_retry_at=None)
        elif new_status == S.DELIVERED:
            values.update(delivered_at=now)
        elif new_status in (S.FAILED, S.BOUNCED):
            values.update(
                failed_at=now,
                error_code=ctx.error_code,
                error_message=ctx.error_message,
                error_stack=ctx.error_stack,
            )
            if new_status == S.FAILED and ctx.retryable and budget_left:
                values["next_retry_at"] = ctx.next_retry_at or now + self._retry_delay(record.attempt_count)
            else:
                values["next_retry_at"] = None
                values["max_attempts"] = record.attempt_count

        return values

    async def update_status(
        self,
        notification_id: str,
        new_status: NotificationStatus,
        context: StatusContext | None = None,
    ) -> Notification:
        """
        Move a notification to `new_status`.

        Raises:
            NotFoundError: unknown id
            InvalidTransitionError: transition not allowed from the current status
            AttemptsExhaustedError: no retry budget left (unless overridden)
            ConflictError: the row kept changing under us
        """
        ctx = context or StatusContext()

        for attempt in range(1, CAS_MAX_TRIES + 1):
            record = await self.repo.get_fresh(notification_id)
            if record is None:
                raise NotFoundError(f"Notification {notification_id} not found", code="NOTIF_NOT_FOUND")

            values = self._transition_values(record, new_status, ctx)
            seen_status = NotificationStatus(record.status)
            written = await self._execute_db_operation(
                "update_status",
                self.repo.compare_and_set(
                    notification_id,
                    seen_status,
                    record.attempt_count,
                    values,
                ),
            )
            if written:
                updated = await self.repo.get_fresh(notification_id)
                self._log_operation(
                    "Notification status changed",
                    notification_id=notification_id,
                    from_status=str(seen_status),
                    to_status=str(new_status),
                    attempt_count=updated.attempt_count,
                )
                return updated

            self._log_debug(
                "Status write lost a race, re-reading",
                notification_id=notification_id,
                try_number=attempt,
            )

        raise ConflictError(
            f"Notification {notification_id} changed concurrently; status not updated",
            code="NOTIF_CONCURRENT_UPDATE",
        )

    async def cancel(self, notification_id: str) -> Notification:
        return await self.update_status(notification_id, S.CANCELLED)
