"""
User Preference Repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.models.user import UserPreference
from modules.notifier.repositories.base import BaseRepository


class UserPreferenceRepository(BaseRepository[UserPreference]):
    """Repository for UserPreference model."""

    model = UserPreference
    not_found_code = "USER_NOT_FOUND"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
