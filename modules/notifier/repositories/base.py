"""
Base Repository.

Primary-key access and simple writes shared by the notification, template
and preference repositories. Every write flushes, so integrity errors
surface inside the calling service's _execute_db_operation.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.exceptions import NotFoundError
from modules.notifier.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Subclasses set the model class and the code reported when a row is missing:

        class NotificationTemplateRepository(BaseRepository[NotificationTemplate]):
            model = NotificationTemplate
            not_found_code = "TEMPLATE_NOT_FOUND"
    """

    model: type[ModelType]
    not_found_code: str = "RES_NOT_FOUND"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id_or_none(self, id: str) -> ModelType | None:
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_by_id(self, id: str) -> ModelType:
        """Raises NotFoundError (with this repository's code) when missing."""
        instance = await self.get_by_id_or_none(id)
        if instance is None:
            raise NotFoundError(f"{self.model.__name__} {id} not found", code=self.not_found_code)
        return instance

    async def create(self, **values: Any) -> ModelType:
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def update(self, id: str, **values: Any) -> ModelType:
        """Set the given columns. Unknown names are ignored."""
        instance = await self.get_by_id(id)
        for key, value in values.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def delete(self, id: str) -> None:
        instance = await self.get_by_id(id)
        await self.session.delete(instance)
        await self.session.flush()
