"""
API schemas. Every response is wrapped in ApiResponse, PaginatedResponse or
ErrorResponse; the domain schemas below are the `data` payloads.
"""

from modules.notifier.schemas.base import (
    ApiResponse,
    ErrorDetail,
    ErrorResponse,
    PaginatedResponse,
    PaginationInfo,
    ResponseMetadata,
)
from modules.notifier.schemas.notification import (
    CleanupResult,
    DispatchOptions,
    DispatchResult,
    NotificationResponse,
    NotificationStats,
    StatusUpdate,
)
from modules.notifier.schemas.template import TemplateActivation, TemplateCreate, TemplateResponse, TemplateUpdate
from modules.notifier.schemas.user import PreferenceResponse, PreferenceUpdate, UserUpsert

__all__ = [
    "ApiResponse",
    "CleanupResult",
    "DispatchOptions",
    "DispatchResult",
    "ErrorDetail",
    "ErrorResponse",
    "NotificationResponse",
    "NotificationStats",
    "PaginatedResponse",
    "PaginationInfo",
    "PreferenceResponse",
    "PreferenceUpdate",
    "ResponseMetadata",
    "StatusUpdate",
    "TemplateActivation",
    "TemplateCreate",
    "TemplateResponse",
    "TemplateUpdate",
    "UserUpsert",
]
