"""
Template Service.

Versioned template management. Creating a template for an existing code
adds a new version, makes it the active one and deactivates the previous
active version in the same transaction.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.exceptions import NotFoundError
from modules.notifier.models.template import NotificationTemplate
from modules.notifier.repositories.template import NotificationTemplateRepository
from modules.notifier.schemas.template import TemplateCreate, TemplateUpdate
from modules.notifier.services.base import BaseService


class TemplateService(BaseService):
    """Business logic for notification templates."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = NotificationTemplateRepository(session)

    async def create(self, data: TemplateCreate) -> NotificationTemplate:
        """Create the next version of `data.code` and make it active."""
        next_version = await self.repo.max_version(data.code) + 1
        self._log_operation("Creating template version", code=data.code, version=next_version)

        await self._execute_db_operation("deactivate_template", self.repo.deactivate_code(data.code))
        template = await self._execute_db_operation(
            "create_template",
            self.repo.create(
                code=data.code,
                name=data.name,
                channel=data.channel,
                type=data.type,
                subject=data.subject,
                body_template=data.body_template,
                variables=list(data.variables),
                description=data.description,
                version=next_version,
                is_active=True,
            ),
        )
        return template

    async def get(self, template_id: str) -> NotificationTemplate:
        return await self.repo.get_by_id(template_id)

    async def get_active(self, code: str) -> NotificationTemplate:
        template = await self.repo.get_active_by_code(code)
        if template is None:
            raise NotFoundError(f"No active template for code {code}", code="TEMPLATE_NOT_FOUND")
        return template

    async def list_templates(
        self,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NotificationTemplate]:
        return await self.repo.list_templates(active_only=active_only, limit=limit, offset=offset)

    async def list_versions(self, code: str) -> list[NotificationTemplate]:
        versions = await self.repo.list_versions(code)
        if not versions:
            raise NotFoundError(f"No template with code {code}", code="TEMPLATE_NOT_FOUND")
        return versions

    async def update(self, template_id: str, data: TemplateUpdate) -> NotificationTemplate:
        """Edit a version in place (no new version is created)."""
        update_data: dict[str, Any] = data.model_dump(exclude_unset=True)
        if not update_data:
            return await self.repo.get_by_id(template_id)

        self._log_operation(
            "Updating template",
            template_id=template_id,
            fields=list(update_data.keys()),
        )
        return await self._execute_db_operation(
            "update_template",
            self.repo.update(template_id, **update_data),
        )

    async def set_active(self, template_id: str, is_active: bool) -> NotificationTemplate:
        """Activate one version (deactivating its siblings) or deactivate it."""
        template = await self.repo.get_by_id(template_id)
        if is_active:
            await self._execute_db_operation("deactivate_template", self.repo.deactivate_code(template.code))
        self._log_operation(
            "Template activation changed",
            template_id=template_id,
            code=template.code,
            is_active=is_active,
        )
        return await self._execute_db_operation(
            "set_template_active",
            self.repo.update(template_id, is_active=is_active),
        )

    async def delete(self, template_id: str) -> None:
        self._log_operation("Deleting template", template_id=template_id)
        await self._execute_db_operation("delete_template", self.repo.delete(template_id))
