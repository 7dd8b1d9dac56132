"""
Preference Service.

Read and maintain per-user opt-ins. Dispatch consults `is_enabled` before
creating work; a user without a preference row is opted in to
transactional email.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.models.notification import NotificationChannel, NotificationType
from modules.notifier.models.user import UserPreference
from modules.notifier.repositories.user import UserPreferenceRepository
from modules.notifier.schemas.user import PreferenceUpdate, UserUpsert
from modules.notifier.services.base import BaseService

CHANNEL_FLAGS = {
    NotificationChannel.EMAIL: "email_enabled",
    NotificationChannel.SMS: "sms_enabled",
    NotificationChannel.PUSH: "push_enabled",
}

MARKETING_TYPES = frozenset({NotificationType.MARKETING})


class PreferenceService(BaseService):
    """Business logic for user preferences."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = UserPreferenceRepository(session)

    async def upsert_user(self, user_id: str, data: UserUpsert) -> UserPreference:
        """Create or refresh the contact details of a user."""
        existing = await self.repo.get_by_id_or_none(user_id)
        if existing is None:
            self._log_operation("Registering user", user_id=user_id)
            return await self._execute_db_operation(
                "create_user",
                self.repo.create(id=user_id, email=data.email, username=data.username),
            )
        return await self._execute_db_operation(
            "update_user",
            self.repo.update(user_id, email=data.email, username=data.username),
        )

    async def get(self, user_id: str) -> UserPreference:
        return await self.repo.get_by_id(user_id)

    async def update(self, user_id: str, data: PreferenceUpdate) -> UserPreference:
        update_data = data.model_dump(exclude_unset=True)
        if not update_data:
            return await self.repo.get_by_id(user_id)
        self._log_operation("Updating preferences", user_id=user_id, fields=list(update_data))
        return await self._execute_db_operation(
            "update_preferences",
            self.repo.update(user_id, **update_data),
        )

    async def is_enabled(
        self,
        user_id: str,
        channel: NotificationChannel,
        type: NotificationType,
    ) -> bool:
        """Whether `user_id` accepts `type` notifications over `channel`."""
        preference = await self.repo.get_by_id_or_none(user_id)
        if preference is None:
            return type not in MARKETING_TYPES

        flag = CHANNEL_FLAGS.get(channel)
        if flag is not None and not getattr(preference, flag):
            return False
        if type in MARKETING_TYPES:
            return preference.marketing_enabled
        return preference.transactional_enabled
