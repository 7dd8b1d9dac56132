"""
FastAPI Dependencies.

Shared dependencies for request handling.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.config import get_app_config
from modules.notifier.core.database import get_db_session
from modules.notifier.core.exceptions import QueueUnavailableError
from modules.notifier.core.middleware import REQUEST_ID_HEADER, resolve_request_id
from modules.notifier.runtime import NotifierRuntime
from modules.notifier.services.dispatch import DispatchService
from modules.notifier.services.notifications import NotificationService
from modules.notifier.services.preferences import PreferenceService
from modules.notifier.services.templates import TemplateService

# Type alias for database session dependency
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_request_id(request: Request) -> str:
    """Correlation id set by RequestContextMiddleware."""
    request_id = getattr(request.state, "request_id", None)
    return request_id or resolve_request_id(request.headers.get(REQUEST_ID_HEADER))


RequestId = Annotated[str, Depends(get_request_id)]


def get_runtime(request: Request) -> NotifierRuntime:
    """The runtime built by the application lifespan."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise QueueUnavailableError("Notifier runtime is not running")
    return runtime


Runtime = Annotated[NotifierRuntime, Depends(get_runtime)]


def get_notification_service(db: DbSession) -> NotificationService:
    lifecycle = get_app_config().notifications.lifecycle
    return NotificationService(
        db,
        max_attempts=lifecycle.max_attempts,
        retry_backoff_seconds=lifecycle.retry_backoff_seconds,
        page_size=lifecycle.query_page_size,
    )


def get_dispatch_service(db: DbSession, runtime: Runtime) -> DispatchService:
    features = runtime.app_config.features
    return DispatchService(
        db,
        runtime,
        sync_fallback_enabled=features.notifications_sync_fallback_enabled,
        preferences_enforced=features.notifications_preferences_enforced,
    )


def get_template_service(db: DbSession) -> TemplateService:
    return TemplateService(db)


def get_preference_service(db: DbSession) -> PreferenceService:
    return PreferenceService(db)


NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
DispatchServiceDep = Annotated[DispatchService, Depends(get_dispatch_service)]
TemplateServiceDep = Annotated[TemplateService, Depends(get_template_service)]
PreferenceServiceDep = Annotated[PreferenceService, Depends(get_preference_service)]
