"""
User Preference Schemas.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserUpsert(BaseModel):
    """Contact details pushed by the identity service."""

    email: EmailStr
    username: str | None = Field(default=None, max_length=255)


class PreferenceUpdate(BaseModel):
    email_enabled: bool | None = None
    sms_enabled: bool | None = None
    push_enabled: bool | None = None
    marketing_enabled: bool | None = None
    transactional_enabled: bool | None = None


class PreferenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str | None
    email_enabled: bool
    sms_enabled: bool
    push_enabled: bool
    marketing_enabled: bool
    transactional_enabled: bool
