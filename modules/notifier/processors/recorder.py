"""
Notification Recorder.

Bridges job processing and the lifecycle service. Each call opens its own
session and commits, so a processor can run inside a queue consumer or
inline from a request handler without sharing a transaction.
"""

import traceback
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.notifier.core.database import session_scope
from modules.notifier.core.exceptions import ConflictError
from modules.notifier.core.logging import get_logger
from modules.notifier.events.contracts import serialize
from modules.notifier.events.schemas import EventEnvelope, EventType
from modules.notifier.models.notification import NotificationStatus, NotificationType
from modules.notifier.services.notifications import NotificationService, StatusContext

logger = get_logger(__name__)

NOTIFICATION_TYPE_FOR_EVENT: dict[str, NotificationType] = {
    EventType.EMAIL_VERIFICATION_REQUESTED: NotificationType.EMAIL_VERIFICATION,
    EventType.PASSWORD_RESET_REQUESTED: NotificationType.PASSWORD_RESET,
}

DELIVERED_STATUSES = frozenset({NotificationStatus.SENT, NotificationStatus.DELIVERED})


@dataclass(frozen=True)
class AttemptTicket:
    """Snapshot of the record a job attempt is working on."""

    notification_id: str
    status: NotificationStatus
    attempt_count: int
    max_attempts: int
    external_id: str | None = None

    @property
    def already_delivered(self) -> bool:
        return self.status in DELIVERED_STATUSES


class NotificationRecorder:
    """Records job attempts and outcomes on Notification rows keyed by jobId."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
    ) -> None:
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds

    def _service(self, session: AsyncSession) -> NotificationService:
        return NotificationService(
            session,
            max_attempts=self.max_attempts,
            retry_backoff_seconds=self.retry_backoff_seconds,
        )

    async def start_attempt(self, envelope: EventEnvelope, subject: str | None = None) -> AttemptTicket:
        """
        Find (or create) the record for this envelope and move it to PROCESSING.

        A record that is already SENT or DELIVERED is returned untouched; the
        caller treats it as a duplicate delivery.
        """
        async with self.session_factory() as session:
            service = self._service(session)
            record = await service.find_by_job_id(envelope.event_id)

            if record is None:
                try:
                    record = await service.create(
                        user_id=envelope.payload.user_id,
                        type=NOTIFICATION_TYPE_FOR_EVENT[envelope.event_type],
                        recipient=envelope.payload.email,
                        payload=serialize(envelope),
                        subject=subject,
                        job_id=envelope.event_id,
                    )
                    await session.commit()
                except ConflictError:
                    # Another consumer created it first
                    await session.rollback()
                    record = await service.find_by_job_id(envelope.event_id)
                    if record is None:
                        raise

            if record.status in DELIVERED_STATUSES:
                return AttemptTicket(
                    notification_id=record.id,
                    status=record.status,
                    attempt_count=record.attempt_count,
                    max_attempts=record.max_attempts,
                    external_id=record.external_id,
                )

            record = await service.update_status(record.id, NotificationStatus.PROCESSING)
            await session.commit()
            return AttemptTicket(
                notification_id=record.id,
                status=record.status,
                attempt_count=record.attempt_count,
                max_attempts=record.max_attempts,
            )

    async def record_sent(self, notification_id: str, message_id: str | None) -> None:
        async with session_scope(self.session_factory) as session:
            await self._service(session).update_status(
                notification_id,
                NotificationStatus.SENT,
                StatusContext(external_id=message_id),
            )

    async def record_failure(
        self,
        notification_id: str,
        error: BaseException,
        code: str,
        retryable: bool,
    ) -> int:
        """Mark the attempt FAILED. Returns the attempt count of the record."""
        stack = "".join(traceback.format_exception(error))
        async with session_scope(self.session_factory) as session:
            record = await self._service(session).update_status(
                notification_id,
                NotificationStatus.FAILED,
                StatusContext(
                    error_code=code,
                    error_message=str(error),
                    error_stack=stack,
                    retryable=retryable,
                ),
            )
        return record.attempt_count

    async def fail_in_flight(self, job_id: str, error: BaseException, code: str) -> bool:
        """
        Mark an interrupted attempt FAILED (retryable) if its record is still PROCESSING.

        Returns False when there is no such record or it already left PROCESSING.
        """
        async with self.session_factory() as session:
            record = await self._service(session).find_by_job_id(job_id)
        if record is None or record.status != NotificationStatus.PROCESSING:
            return False
        await self.record_failure(record.id, error, code, retryable=True)
        return True
