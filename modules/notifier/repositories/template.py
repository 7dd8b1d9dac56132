"""
Notification Template Repository.
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.models.template import NotificationTemplate
from modules.notifier.repositories.base import BaseRepository


class NotificationTemplateRepository(BaseRepository[NotificationTemplate]):
    """Repository for NotificationTemplate model."""

    model = NotificationTemplate
    not_found_code = "TEMPLATE_NOT_FOUND"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_active_by_code(self, code: str) -> NotificationTemplate | None:
        result = await self.session.execute(
            select(NotificationTemplate).where(
                NotificationTemplate.code == code,
                NotificationTemplate.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_versions(self, code: str) -> list[NotificationTemplate]:
        result = await self.session.execute(
            select(NotificationTemplate)
            .where(NotificationTemplate.code == code)
            .order_by(NotificationTemplate.version.desc())
        )
        return list(result.scalars().all())

    async def max_version(self, code: str) -> int:
        result = await self.session.execute(
            select(func.max(NotificationTemplate.version)).where(NotificationTemplate.code == code)
        )
        return result.scalar_one() or 0

    async def deactivate_code(self, code: str) -> None:
        """Mark every version of `code` inactive."""
        await self.session.execute(
            update(NotificationTemplate)
            .where(NotificationTemplate.code == code, NotificationTemplate.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )

    async def list_templates(
        self,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NotificationTemplate]:
        stmt = select(NotificationTemplate)
        if active_only:
            stmt = stmt.where(NotificationTemplate.is_active.is_(True))
        result = await self.session.execute(
            stmt.order_by(NotificationTemplate.code, NotificationTemplate.version.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())
