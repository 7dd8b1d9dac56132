"""
Template Schemas.

Pydantic schemas for template API request/response validation.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from modules.notifier.models.notification import NotificationChannel, NotificationType


class TemplateCreate(BaseModel):
    """Schema for creating a template (or a new version of an existing code)."""

    code: str = Field(
        ...,
        min_length=1,
        max_length=100,
        pattern=r"^[a-z0-9][a-z0-9._-]*$",
        examples=["email-verification"],
    )
    name: str = Field(..., min_length=1, max_length=255)
    channel: NotificationChannel = NotificationChannel.EMAIL
    type: NotificationType
    subject: str | None = Field(default=None, max_length=500)
    body_template: str = Field(..., min_length=1)
    variables: list[str] = Field(default_factory=list, examples=[["username", "link"]])
    description: str | None = None


class TemplateUpdate(BaseModel):
    """Schema for editing a template version in place."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    subject: str | None = Field(default=None, max_length=500)
    body_template: str | None = Field(default=None, min_length=1)
    variables: list[str] | None = None
    description: str | None = None


class TemplateActivation(BaseModel):
    is_active: bool


class TemplateResponse(BaseModel):
    """Schema for a template in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    name: str
    channel: NotificationChannel
    type: NotificationType
    subject: str | None
    body_template: str
    variables: list[Any]
    version: int
    is_active: bool
    description: str | None
    created_at: datetime
    updated_at: datetime
