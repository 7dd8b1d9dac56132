"""
Event Publishers.

Wraps the broker's publish() with the stream names this service writes to:

    <queue>                  request envelopes (dispatch endpoint, replay tasks)
    dlq:<queue>              messages that could not be processed
    notification-events      *Sent / *Failed acknowledgements

Acknowledgements honour the events_publish_enabled feature flag. When the
flag is off they are skipped without error.

Usage:
    from modules.notifier.events.publishers import NotificationEventPublisher

    publisher = NotificationEventPublisher(broker, app_config)
    await publisher.enqueue(envelope)
"""

from typing import Any

from faststream.redis import RedisBroker
from redis.exceptions import RedisError

from modules.notifier.core.config import AppConfig
from modules.notifier.core.exceptions import QueueUnavailableError
from modules.notifier.core.logging import get_logger
from modules.notifier.core.utils import isoformat_utc
from modules.notifier.events.contracts import ACKNOWLEDGEMENTS, QUEUE_FOR_EVENT, new_envelope, serialize
from modules.notifier.events.schemas import EmailFailedPayload, EmailSentPayload, EventEnvelope

logger = get_logger(__name__)

PUBLISH_ERRORS = (RedisError, OSError, TimeoutError)


class NotificationEventPublisher:
    """Publishes request, dead-letter and acknowledgement messages to Redis Streams."""

    def __init__(self, broker: RedisBroker, app_config: AppConfig) -> None:
        self.broker = broker
        self.app_config = app_config

    @property
    def producer(self) -> str:
        return self.app_config.application.producer_name

    def dlq_stream(self, queue: str) -> str:
        return f"{self.app_config.events.dlq.stream_prefix}:{queue}"

    async def _publish(self, stream: str, message: dict[str, Any]) -> None:
        try:
            await self.broker.publish(
                message,
                stream=stream,
                maxlen=self.app_config.events.streams.default_maxlen,
            )
        except PUBLISH_ERRORS as e:
            raise QueueUnavailableError(f"Could not publish to {stream}: {e}") from e

    async def enqueue(self, envelope: EventEnvelope) -> str:
        """
        Put a request envelope on its queue.

        Returns:
            The queue (stream) name.

        Raises:
            QueueUnavailableError: the broker refused or could not be reached.
        """
        queue = QUEUE_FOR_EVENT.get(envelope.event_type)
        if queue is None:
            raise ValueError(f"Event type {envelope.event_type!r} has no queue")

        await self._publish(queue, serialize(envelope))
        logger.debug(
            "Job enqueued",
            extra={"queue": queue, "event_id": envelope.event_id, "event_type": envelope.event_type},
        )
        return queue

    async def publish_dlq(self, queue: str, raw_message: Any, code: str, reason: str) -> bool:
        """Dead-letter the original message. Returns False when the DLQ is disabled."""
        dlq_config = self.app_config.events.dlq
        if not dlq_config.enabled:
            return False

        stream = self.dlq_stream(queue)
        message = dict(raw_message) if isinstance(raw_message, dict) else {"raw": raw_message}
        message["_dlq_error"] = reason
        message["_dlq_code"] = code
        message["_dlq_original_stream"] = queue
        message["_dlq_failed_at"] = isoformat_utc()

        await self._publish(stream, message)
        logger.warning(
            "Job sent to DLQ",
            extra={"dlq_stream": stream, "event_id": message.get("eventId"), "code": code, "error": reason},
        )
        return True

    async def _acknowledge(self, envelope: EventEnvelope) -> bool:
        if not self.app_config.features.events_publish_enabled:
            return False

        stream = self.app_config.events.acknowledgements.stream
        await self._publish(stream, serialize(envelope))
        logger.debug(
            "Acknowledgement published",
            extra={"stream": stream, "event_type": envelope.event_type, "event_id": envelope.event_id},
        )
        return True

    async def email_sent(
        self,
        request: EventEnvelope,
        message_id: str,
    ) -> bool:
        """Publish the *Sent acknowledgement for a request envelope."""
        sent_type, _ = ACKNOWLEDGEMENTS[request.event_type]
        payload = EmailSentPayload(
            job_id=request.event_id,
            user_id=request.payload.user_id,
            email=request.payload.email,
            message_id=message_id,
            sent_at=isoformat_utc(),
        )
        return await self._acknowledge(new_envelope(sent_type, payload, self.producer))

    async def email_failed(
        self,
        request: EventEnvelope,
        code: str | None,
        reason: str,
        attempts_made: int,
    ) -> bool:
        """Publish the *Failed acknowledgement for a request envelope."""
        _, failed_type = ACKNOWLEDGEMENTS[request.event_type]
        payload = EmailFailedPayload(
            job_id=request.event_id,
            user_id=request.payload.user_id,
            email=request.payload.email,
            error_code=code,
            error_reason=reason or "unknown error",
            attempts_made=attempts_made,
            failed_at=isoformat_utc(),
        )
        return await self._acknowledge(new_envelope(failed_type, payload, self.producer))
