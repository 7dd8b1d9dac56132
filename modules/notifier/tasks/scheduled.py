"""
Scheduled Maintenance Tasks.

Tasks that run on a schedule (cron-based).
These tasks are registered with the broker and include schedule metadata
that the TaskiqScheduler reads via LabelScheduleSource.

    replay_retryable_notifications    */5 * * * *   FAILED with budget left -> queue again
    dispatch_scheduled_notifications  * * * * *     PENDING whose scheduledFor has passed -> queue
    purge_expired_notifications       0 2 * * *     delete finished records past retention

When the queue backend is down, due records are processed inline (if the
sync fallback is enabled) instead of being enqueued.

Usage:
    # Import and register scheduled tasks
    from modules.notifier.tasks.scheduled import register_scheduled_tasks
    register_scheduled_tasks()

    # Start scheduler
    python cli.py --service scheduler
"""

from collections import Counter
from typing import Any

from modules.notifier.core.database import session_scope
from modules.notifier.core.exceptions import (
    ApplicationError,
    InvalidPayloadError,
    InvalidTransitionError,
    QueueUnavailableError,
)
from modules.notifier.core.logging import get_logger
from modules.notifier.core.utils import isoformat_utc
from modules.notifier.events.contracts import validate
from modules.notifier.models.notification import Notification, NotificationStatus
from modules.notifier.processors.result import Success
from modules.notifier.runtime import NotifierRuntime
from modules.notifier.services.notifications import NotificationService, StatusContext

logger = get_logger(__name__)


# =============================================================================
# Helpers
# =============================================================================


def _notification_service(runtime: NotifierRuntime, session) -> NotificationService:
    lifecycle = runtime.app_config.notifications.lifecycle
    return NotificationService(
        session,
        max_attempts=lifecycle.max_attempts,
        retry_backoff_seconds=lifecycle.retry_backoff_seconds,
        page_size=lifecycle.query_page_size,
    )


def _resolve_runtime(runtime: NotifierRuntime | None) -> NotifierRuntime:
    if runtime is not None:
        return runtime
    from modules.notifier.tasks.broker import get_task_runtime

    return get_task_runtime()


async def route_record(
    runtime: NotifierRuntime,
    service: NotificationService,
    record: Notification,
) -> str:
    """
    Send a stored request back through the pipeline.

    Returns one of: queued, sent, failed, deferred, invalid.
    """
    try:
        envelope = validate(record.payload.get("eventType"), record.payload)
    except InvalidPayloadError as e:
        logger.warning(
            "Stored payload no longer validates",
            extra={"notification_id": record.id, "errors": e.errors},
        )
        return "invalid"

    if runtime.monitor.is_available():
        try:
            await runtime.publisher.enqueue(envelope)
        except QueueUnavailableError as e:
            runtime.monitor.mark_unavailable(e.message)
        else:
            try:
                await service.update_status(
                    record.id,
                    NotificationStatus.QUEUED,
                    StatusContext(job_id=envelope.event_id),
                )
                await service.session.commit()
            except InvalidTransitionError:
                # The consumer already moved it on
                await service.session.rollback()
            return "queued"

    if not runtime.app_config.features.notifications_sync_fallback_enabled:
        return "deferred"

    # The processor records through its own sessions
    await service.session.commit()
    processor = runtime.processors.for_event(envelope.event_type)
    result = await processor.process(record.payload)
    return "sent" if isinstance(result, Success) else "failed"


async def _route_all(runtime: NotifierRuntime, service: NotificationService, records: list[Notification]) -> Counter:
    outcomes: Counter = Counter()
    for record in records:
        try:
            outcome = await route_record(runtime, service, record)
        except ApplicationError as e:
            logger.warning(
                "Could not route notification",
                extra={"notification_id": record.id, "error": e.message, "code": e.code},
            )
            await service.session.rollback()
            outcome = "error"
        outcomes[outcome] += 1
    return outcomes


# =============================================================================
# Scheduled Task Functions
# =============================================================================
# These are plain async functions. They get wrapped with broker.task()
# and schedule configuration when register_scheduled_tasks() is called.


async def replay_retryable_notifications(
    runtime: NotifierRuntime | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Re-enqueue FAILED notifications whose retry time has come.

    Runs every 5 minutes.
    """
    runtime = _resolve_runtime(runtime)
    async with runtime.session_factory() as session:
        service = _notification_service(runtime, session)
        records = await service.find_retryable(limit)
        outcomes = await _route_all(runtime, service, records)

    result = {
        "status": "completed",
        "found": len(records),
        "outcomes": dict(outcomes),
        "mode": runtime.mode,
        "completed_at": isoformat_utc(),
    }
    logger.info("Retry replay completed", extra=result)
    return result


async def dispatch_scheduled_notifications(
    runtime: NotifierRuntime | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Dispatch PENDING notifications whose scheduled time has passed.

    Runs every minute.
    """
    runtime = _resolve_runtime(runtime)
    async with runtime.session_factory() as session:
        service = _notification_service(runtime, session)
        records = await service.find_scheduled_ready(limit)
        outcomes = await _route_all(runtime, service, records)

    result = {
        "status": "completed",
        "found": len(records),
        "outcomes": dict(outcomes),
        "mode": runtime.mode,
        "completed_at": isoformat_utc(),
    }
    logger.info("Scheduled dispatch completed", extra=result)
    return result


async def purge_expired_notifications(
    runtime: NotifierRuntime | None = None,
    retention_days: int | None = None,
) -> dict[str, Any]:
    """
    Delete finished notifications older than the retention period.

    Runs daily at 2:00 AM UTC.
    """
    runtime = _resolve_runtime(runtime)
    days = retention_days if retention_days is not None else (
        runtime.app_config.notifications.lifecycle.retention_days
    )
    async with session_scope(runtime.session_factory) as session:
        deleted = await _notification_service(runtime, session).delete_older_than(days)

    result = {
        "status": "completed",
        "retention_days": days,
        "deleted_count": deleted,
        "completed_at": isoformat_utc(),
    }
    logger.info("Retention purge completed", extra=result)
    return result


# =============================================================================
# Schedule Configuration
# =============================================================================

SCHEDULED_TASKS = {
    "replay_retryable_notifications": {
        "function": replay_retryable_notifications,
        "schedule": [{"cron": "*/5 * * * *"}],
        "retry_on_error": False,
        "description": "Re-enqueue failed notifications with retry budget left",
    },
    "dispatch_scheduled_notifications": {
        "function": dispatch_scheduled_notifications,
        "schedule": [{"cron": "* * * * *"}],
        "retry_on_error": False,
        "description": "Dispatch scheduled notifications whose time has come",
    },
    "purge_expired_notifications": {
        "function": purge_expired_notifications,
        "schedule": [{"cron": "0 2 * * *"}],
        "retry_on_error": True,
        "max_retries": 2,
        "description": "Delete finished notifications past retention daily at 2:00 AM UTC",
    },
}

_registered: dict[str, Any] | None = None


def register_scheduled_tasks(broker=None) -> dict[str, Any]:
    """
    Register scheduled task functions with the Taskiq broker.

    This wraps the plain async functions with broker.task decorators
    including their schedule configuration. Registration happens once per
    process; nothing is registered when maintenance is disabled.

    Returns:
        Dict mapping task names to registered task objects
    """
    global _registered
    if _registered is not None:
        return _registered

    from modules.notifier.core.config import get_app_config

    if not get_app_config().features.notifications_maintenance_enabled:
        logger.info("Maintenance tasks disabled by feature flag")
        _registered = {}
        return _registered

    if broker is None:
        from modules.notifier.tasks.broker import get_broker

        broker = get_broker()

    registered = {}
    for task_name, config in SCHEDULED_TASKS.items():
        task_kwargs = {
            "task_name": task_name,
            "schedule": config["schedule"],
            "retry_on_error": config.get("retry_on_error", False),
        }

        if "max_retries" in config:
            task_kwargs["max_retries"] = config["max_retries"]

        registered[task_name] = broker.task(**task_kwargs)(config["function"])

    logger.info(
        "Scheduled tasks registered",
        extra={
            "task_count": len(registered),
            "tasks": list(registered.keys()),
        },
    )

    _registered = registered
    return registered
