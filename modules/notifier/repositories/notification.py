"""
Notification Repository.

Data access for Notification records, including the compare-and-set write
used for every status transition.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.utils import utc_now
from modules.notifier.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from modules.notifier.repositories.base import BaseRepository

PURGEABLE_STATUSES = (
    NotificationStatus.SENT,
    NotificationStatus.DELIVERED,
    NotificationStatus.CANCELLED,
    NotificationStatus.BOUNCED,
)


@dataclass(frozen=True)
class NotificationFilters:
    """Optional filters for listing notifications."""

    user_id: str | None = None
    status: NotificationStatus | None = None
    channel: NotificationChannel | None = None
    type: NotificationType | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification model."""

    model = Notification
    not_found_code = "NOTIF_NOT_FOUND"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_fresh(self, id: str) -> Notification | None:
        """Re-read a record from the database, overwriting any cached state."""
        result = await self.session.execute(
            select(Notification)
            .where(Notification.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_job_id(self, job_id: str) -> Notification | None:
        result = await self.session.execute(
            select(Notification)
            .where(Notification.job_id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _apply_filters(stmt: Select, filters: NotificationFilters) -> Select:
        if filters.user_id is not None:
            stmt = stmt.where(Notification.user_id == filters.user_id)
        if filters.status is not None:
            stmt = stmt.where(Notification.status == filters.status)
        if filters.channel is not None:
            stmt = stmt.where(Notification.channel == filters.channel)
        if filters.type is not None:
            stmt = stmt.where(Notification.type == filters.type)
        if filters.created_from is not None:
            stmt = stmt.where(Notification.created_at >= filters.created_from)
        if filters.created_to is not None:
            stmt = stmt.where(Notification.created_at <= filters.created_to)
        return stmt

    async def list_filtered(
        self,
        filters: NotificationFilters,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        stmt = self._apply_filters(select(Notification), filters)
        result = await self.session.execute(
            stmt.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def count_filtered(self, filters: NotificationFilters) -> int:
        stmt = self._apply_filters(select(func.count()).select_from(Notification), filters)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def compare_and_set(
        self,
        id: str,
        seen_status: NotificationStatus,
        seen_attempts: int,
        values: dict[str, Any],
    ) -> bool:
        """
        Write `values` only if status and attempt_count still match what was read.

        Returns False when another writer got there first.
        """
        result = await self.session.execute(
            update(Notification)
            .where(
                Notification.id == id,
                Notification.status == seen_status,
                Notification.attempt_count == seen_attempts,
            )
            .values(**values, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_retryable(self, now: datetime, limit: int) -> list[Notification]:
        """FAILED records with attempts left whose retry time is unset or past."""
        result = await self.session.execute(
            select(Notification)
            .where(
                Notification.status == NotificationStatus.FAILED,
                Notification.attempt_count < Notification.max_attempts,
                or_(Notification.next_retry_at.is_(None), Notification.next_retry_at <= now),
            )
            .order_by(Notification.failed_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_scheduled_ready(self, now: datetime, limit: int) -> list[Notification]:
        """PENDING records whose scheduled time has elapsed."""
        result = await self.session.execute(
            select(Notification)
            .where(
                Notification.status == NotificationStatus.PENDING,
                Notification.scheduled_for.is_not(None),
                Notification.scheduled_for <= now,
            )
            .order_by(Notification.scheduled_for.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by(self, column: Any, user_id: str | None = None) -> dict[str, int]:
        """Count records grouped by one column."""
        stmt = select(column, func.count()).group_by(column)
        if user_id is not None:
            stmt = stmt.where(Notification.user_id == user_id)
        result = await self.session.execute(stmt)
        return {str(key): count for key, count in result.all()}

    async def count_for_user(self, user_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(Notification)
        if user_id is not None:
            stmt = stmt.where(Notification.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        """Delete terminal, non-retryable records created before `cutoff`."""
        result = await self.session.execute(
            delete(Notification)
            .where(
                Notification.created_at < cutoff,
                or_(
                    Notification.status.in_(PURGEABLE_STATUSES),
                    and_(
                        Notification.status == NotificationStatus.FAILED,
                        Notification.attempt_count >= Notification.max_attempts,
                    ),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
