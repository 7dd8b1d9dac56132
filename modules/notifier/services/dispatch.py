"""
Dispatch Service.

Entry point for "send this notification now". Records the request, then
hands it to the queue when the queue backend is usable and processes it
inline when it is not:

    preferences off    -> record CANCELLED            (mode "skipped")
    scheduled later    -> record stays PENDING        (mode "scheduled")
    queue available    -> enqueue, record QUEUED      (mode "async")
    queue unavailable  -> process inline, SENT/FAILED (mode "sync", with a warning)

A request whose eventId was already dispatched returns the existing record
(mode "duplicate").
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.exceptions import (
    AttemptsExhaustedError,
    InvalidTransitionError,
    QueueUnavailableError,
    ValidationError,
)
from modules.notifier.core.utils import to_naive_utc, utc_now
from modules.notifier.events.contracts import serialize
from modules.notifier.events.schemas import EventEnvelope
from modules.notifier.models.notification import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from modules.notifier.processors.recorder import NOTIFICATION_TYPE_FOR_EVENT
from modules.notifier.processors.result import Success
from modules.notifier.runtime import NotifierRuntime
from modules.notifier.services.base import BaseService
from modules.notifier.services.notifications import NotificationService, StatusContext
from modules.notifier.services.preferences import PreferenceService

SYNC_WARNING = "Queue backend unavailable; the notification was processed synchronously"


@dataclass(frozen=True)
class DispatchOutcome:
    notification_id: str
    status: NotificationStatus
    mode: str
    message_id: str | None = None
    warning: str | None = None
    error: str | None = None
    error_code: str | None = None


class DispatchService(BaseService):
    """Creates notification records and routes them to the queue or the inline processor."""

    def __init__(
        self,
        session: AsyncSession,
        runtime: NotifierRuntime,
        sync_fallback_enabled: bool = True,
        preferences_enforced: bool = True,
    ) -> None:
        super().__init__(session)
        self.runtime = runtime
        self.sync_fallback_enabled = sync_fallback_enabled
        self.preferences_enforced = preferences_enforced

        lifecycle = runtime.app_config.notifications.lifecycle
        self.notifications = NotificationService(
            session,
            max_attempts=lifecycle.max_attempts,
            retry_backoff_seconds=lifecycle.retry_backoff_seconds,
            page_size=lifecycle.query_page_size,
        )
        self.preferences = PreferenceService(session)

    def _outcome(self, record: Notification, mode: str, **extra: Any) -> DispatchOutcome:
        return DispatchOutcome(
            notification_id=record.id,
            status=NotificationStatus(record.status),
            mode=mode,
            **extra,
        )

    async def dispatch(
        self,
        envelope: EventEnvelope,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        scheduled_for: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> DispatchOutcome:
        """
        Record and route one request envelope.

        Raises:
            ValidationError: the envelope's event type is not dispatchable
            QueueUnavailableError: queue down and sync fallback disabled
        """
        notification_type = NOTIFICATION_TYPE_FOR_EVENT.get(envelope.event_type)
        if notification_type is None:
            raise ValidationError(
                f"{envelope.event_type} cannot be dispatched",
                details={"event_type": envelope.event_type},
                code="EVT_NOT_DISPATCHABLE",
            )
        processor = self.runtime.processors.for_event(envelope.event_type)
        payload = envelope.payload

        existing = await self.notifications.find_by_job_id(envelope.event_id)
        if existing is not None:
            self._log_operation("Dispatch ignored: eventId already recorded", notification_id=existing.id)
            return self._outcome(existing, "duplicate", message_id=existing.external_id)

        record = await self.notifications.create(
            user_id=payload.user_id,
            type=notification_type,
            recipient=payload.email,
            payload=serialize(envelope),
            channel=NotificationChannel.EMAIL,
            priority=priority,
            subject=processor.profile.subject,
            metadata=metadata,
            job_id=envelope.event_id,
            scheduled_for=to_naive_utc(scheduled_for) if scheduled_for else None,
        )

        if self.preferences_enforced and not await self.preferences.is_enabled(
            payload.user_id, NotificationChannel.EMAIL, notification_type,
        ):
            record = await self.notifications.cancel(record.id)
            await self.session.commit()
            self._log_operation("Dispatch skipped by user preferences", notification_id=record.id)
            return self._outcome(record, "skipped")

        # Consumers and the inline processor use their own sessions
        await self.session.commit()

        if record.scheduled_for is not None and record.scheduled_for > utc_now():
            self._log_operation(
                "Dispatch scheduled",
                notification_id=record.id,
                scheduled_for=record.scheduled_for.isoformat(),
            )
            return self._outcome(record, "scheduled")

        if self.runtime.monitor.is_available():
            try:
                await self.runtime.publisher.enqueue(envelope)
            except QueueUnavailableError as e:
                self.runtime.monitor.mark_unavailable(e.message)
            else:
                return await self._mark_queued(record, envelope)

        if not self.sync_fallback_enabled:
            raise QueueUnavailableError("Queue backend unavailable and synchronous fallback is disabled")

        return await self._process_inline(record, envelope)

    async def _mark_queued(self, record: Notification, envelope: EventEnvelope) -> DispatchOutcome:
        try:
            record = await self.notifications.update_status(
                record.id,
                NotificationStatus.QUEUED,
                StatusContext(job_id=envelope.event_id),
            )
            await self.session.commit()
        except (InvalidTransitionError, AttemptsExhaustedError):
            # A consumer picked the job up (and may have finished it) before we got here
            await self.session.rollback()
            record = await self.notifications.get(record.id)

        self._log_operation("Dispatch queued", notification_id=record.id, event_id=envelope.event_id)
        return self._outcome(record, "async")

    async def _process_inline(self, record: Notification, envelope: EventEnvelope) -> DispatchOutcome:
        self._logger.warning(
            "Queue unavailable, processing inline",
            extra={"notification_id": record.id, "event_id": envelope.event_id},
        )
        processor = self.runtime.processors.for_event(envelope.event_type)
        result = await processor.process(serialize(envelope))

        record = await self.notifications.get(record.id)
        if isinstance(result, Success):
            return self._outcome(record, "sync", message_id=result.message_id, warning=SYNC_WARNING)
        return self._outcome(record, "sync", warning=SYNC_WARNING, error=result.reason, error_code=result.code)
