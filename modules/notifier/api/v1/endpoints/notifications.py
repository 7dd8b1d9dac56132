"""
Notifications API Endpoints.

Dispatch, lifecycle queries and maintenance operations on notification
records. The dispatch body is a request envelope in wire format; it goes
through the same contract validation as queue messages.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import JSONResponse

from modules.notifier.core.config import get_app_config
from modules.notifier.core.dependencies import DispatchServiceDep, NotificationServiceDep, RequestId
from modules.notifier.core.exceptions import InvalidPayloadError
from modules.notifier.core.utils import to_naive_utc
from modules.notifier.events.contracts import QUEUE_FOR_EVENT, validate
from modules.notifier.models.notification import (
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from modules.notifier.repositories.notification import NotificationFilters
from modules.notifier.schemas.base import (
    ApiResponse,
    ErrorDetail,
    ErrorResponse,
    PaginatedResponse,
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
from modules.notifier.services.notifications import StatusContext

router = APIRouter()


def _clamp_limit(limit: int | None) -> int:
    pagination = get_app_config().application.pagination
    if limit is None:
        return pagination.default_limit
    return max(1, min(limit, pagination.max_limit))


@router.post(
    "/dispatch",
    response_model=ApiResponse[DispatchResult],
    status_code=202,
    responses={502: {"model": ErrorResponse, "description": "Inline delivery failed"}},
    summary="Dispatch a notification",
    description=(
        "Record a request envelope and deliver it through the queue, or inline "
        "when the queue backend is unavailable (the response then carries a warning). "
        "A failed inline delivery answers 502 with the warning and the notification id."
    ),
)
async def dispatch_notification(
    service: DispatchServiceDep,
    request_id: RequestId,
    envelope: dict[str, Any] = Body(..., examples=[{
        "eventId": "4f1c2e9a-0b7d-4c55-9a43-3f0d2f9b1e21",
        "eventType": "EmailVerificationRequested",
        "eventVersion": 1,
        "occurredAt": "2024-01-01T00:00:00Z",
        "producer": "oauth2-server",
        "payload": {
            "userId": "u1",
            "email": "a@b.com",
            "username": "Ali",
            "token": "t",
            "verificationLink": "https://app/v?t=t",
            "expiresAt": "2024-01-02T00:00:00Z",
        },
    }]),
    options: DispatchOptions = Depends(),
    label: str | None = Query(default=None, description="Free-form label stored with the record"),
) -> ApiResponse[DispatchResult] | JSONResponse:
    event_type = envelope.get("eventType")
    if event_type not in QUEUE_FOR_EVENT:
        raise InvalidPayloadError(
            str(event_type),
            [{"loc": "eventType", "msg": "Only request events can be dispatched", "type": "not_dispatchable"}],
        )
    request_envelope = validate(event_type, envelope)

    outcome = await service.dispatch(
        request_envelope,
        priority=options.priority,
        scheduled_for=options.scheduled_for,
        metadata={"request_id": request_id, **({"label": label} if label else {})},
    )
    if outcome.mode == "sync" and outcome.error is not None:
        failure = ErrorResponse(
            error=ErrorDetail(
                code=outcome.error_code or "EMAIL_SEND_FAILED",
                message=outcome.error,
                details={"notification_id": outcome.notification_id, "status": outcome.status, "mode": outcome.mode},
            ),
            warning=outcome.warning,
            metadata=ResponseMetadata(request_id=request_id),
        )
        return JSONResponse(status_code=502, content=failure.model_dump(mode="json"))

    return ApiResponse(
        data=DispatchResult(
            notification_id=outcome.notification_id,
            status=outcome.status,
            mode=outcome.mode,
            message_id=outcome.message_id,
            warning=outcome.warning,
            error=outcome.error,
        ),
        warning=outcome.warning,
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.get(
    "",
    response_model=PaginatedResponse[NotificationResponse],
    summary="List notifications",
)
async def list_notifications(
    service: NotificationServiceDep,
    request_id: RequestId,
    user_id: str | None = Query(default=None),
    status: NotificationStatus | None = Query(default=None),
    channel: NotificationChannel | None = Query(default=None),
    type: NotificationType | None = Query(default=None),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
) -> PaginatedResponse[NotificationResponse]:
    filters = NotificationFilters(
        user_id=user_id,
        status=status,
        channel=channel,
        type=type,
        created_from=to_naive_utc(created_from) if created_from else None,
        created_to=to_naive_utc(created_to) if created_to else None,
    )
    result = await service.list_notifications(filters, page=page, limit=_clamp_limit(limit))
    return PaginatedResponse[NotificationResponse].from_items(
        result["items"],
        NotificationResponse.model_validate,
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        request_id=request_id,
    )


@router.get(
    "/stats/global",
    response_model=ApiResponse[NotificationStats],
    summary="Notification counts by status, channel and type",
)
async def get_stats(
    service: NotificationServiceDep,
    user_id: str | None = Query(default=None),
) -> ApiResponse[NotificationStats]:
    stats = await service.get_stats(user_id)
    return ApiResponse(data=NotificationStats(**stats))


@router.get(
    "/failed/retryable",
    response_model=ApiResponse[list[NotificationResponse]],
    summary="Failed notifications due for a retry",
)
async def get_retryable(
    service: NotificationServiceDep,
    limit: int | None = Query(default=None, ge=1),
) -> ApiResponse[list[NotificationResponse]]:
    items = await service.find_retryable(limit)
    return ApiResponse(data=[NotificationResponse.model_validate(item) for item in items])


@router.get(
    "/scheduled/ready",
    response_model=ApiResponse[list[NotificationResponse]],
    summary="Scheduled notifications whose time has come",
)
async def get_scheduled_ready(
    service: NotificationServiceDep,
    limit: int | None = Query(default=None, ge=1),
) -> ApiResponse[list[NotificationResponse]]:
    items = await service.find_scheduled_ready(limit)
    return ApiResponse(data=[NotificationResponse.model_validate(item) for item in items])


@router.delete(
    "/cleanup/{days}",
    response_model=ApiResponse[CleanupResult],
    summary="Purge finished notifications older than N days",
)
async def cleanup(
    service: NotificationServiceDep,
    days: int = Path(..., ge=0),
) -> ApiResponse[CleanupResult]:
    deleted = await service.delete_older_than(days)
    return ApiResponse(data=CleanupResult(deleted=deleted, days=days))


@router.get(
    "/{notification_id}",
    response_model=ApiResponse[NotificationResponse],
    summary="Get a notification",
)
async def get_notification(
    notification_id: str,
    service: NotificationServiceDep,
) -> ApiResponse[NotificationResponse]:
    record = await service.get(notification_id)
    return ApiResponse(data=NotificationResponse.model_validate(record))


@router.patch(
    "/{notification_id}/status",
    response_model=ApiResponse[NotificationResponse],
    summary="Change a notification's status",
    description="Applies the lifecycle transition rules; invalid transitions return 409.",
)
async def update_status(
    notification_id: str,
    data: StatusUpdate,
    service: NotificationServiceDep,
) -> ApiResponse[NotificationResponse]:
    record = await service.update_status(
        notification_id,
        data.status,
        StatusContext(
            external_id=data.external_id,
            error_code=data.error_code,
            error_message=data.error_message,
            retryable=data.retryable,
            override_attempt_limit=data.override_attempt_limit,
        ),
    )
    return ApiResponse(data=NotificationResponse.model_validate(record))
