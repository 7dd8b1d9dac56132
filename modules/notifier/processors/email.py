"""
Email Job Processor.

Handles one queue's jobs end to end:

    received -> validated -> recorded -> rendered -> sent

Outcomes are returned as a JobResult; the queue adapter decides what a
RetryableError or TerminalError means for redelivery.
"""

from dataclasses import dataclass
from typing import Any

from modules.notifier.core.concurrency import delivery_slot
from modules.notifier.core.exceptions import (
    ApplicationError,
    AttemptsExhaustedError,
    InvalidPayloadError,
    InvalidTransitionError,
    TemplateError,
    TransportError,
)
from modules.notifier.core.logging import get_logger
from modules.notifier.events.contracts import validate
from modules.notifier.events.schemas import EventEnvelope
from modules.notifier.processors.recorder import AttemptTicket, NotificationRecorder
from modules.notifier.processors.result import JobResult, RetryableError, Success, TerminalError
from modules.notifier.templates.renderer import TemplateRenderer
from modules.notifier.transports.base import EmailTransport

logger = get_logger(__name__)


@dataclass(frozen=True)
class EmailJobProfile:
    """What distinguishes one email queue from another."""

    event_type: str
    queue: str
    html_template: str
    text_template: str | None
    subject: str
    link_field: str


class EmailJobProcessor:
    """Processes request envelopes for a single queue."""

    def __init__(
        self,
        profile: EmailJobProfile,
        renderer: TemplateRenderer,
        transport: EmailTransport,
        recorder: NotificationRecorder | None = None,
    ) -> None:
        self.profile = profile
        self.renderer = renderer
        self.transport = transport
        self.recorder = recorder

    @property
    def queue(self) -> str:
        return self.profile.queue

    def _log(self, phase: str, event_id: str | None, **fields: Any) -> None:
        logger.info(
            f"Job {phase}",
            extra={"queue": self.queue, "event_id": event_id, "phase": phase, **fields},
        )

    def _variables(self, envelope: EventEnvelope) -> dict[str, str]:
        payload = envelope.payload
        return {
            "username": payload.username,
            "email": payload.email,
            "link": getattr(payload, self.profile.link_field),
            "expiresAt": self.renderer.format_datetime(payload.expires_at, payload.locale),
        }

    def _render(self, envelope: EventEnvelope) -> tuple[str, str | None]:
        variables = self._variables(envelope)
        html = self.renderer.render_template(self.profile.html_template, variables)
        text = None
        if self.profile.text_template:
            text = self.renderer.render_template(self.profile.text_template, variables).content
        return html.content, text

    async def process(self, raw_message: Any) -> JobResult:
        event_id = raw_message.get("eventId") if isinstance(raw_message, dict) else None
        self._log("received", event_id)

        try:
            envelope = validate(self.profile.event_type, raw_message)
        except InvalidPayloadError as e:
            logger.warning(
                "Job rejected: invalid payload",
                extra={"queue": self.queue, "event_id": event_id, "errors": e.errors},
            )
            return TerminalError(reason=e.message, code=e.code, error=e)

        payload = envelope.payload
        self._log("validated", envelope.event_id, user_id=payload.user_id)

        ticket: AttemptTicket | None = None
        if self.recorder is not None:
            try:
                ticket = await self.recorder.start_attempt(envelope, self.profile.subject)
            except (AttemptsExhaustedError, InvalidTransitionError) as e:
                logger.warning(
                    "Job rejected by lifecycle",
                    extra={"queue": self.queue, "event_id": envelope.event_id, "error": e.message},
                )
                return TerminalError(reason=e.message, code=e.code, error=e)
            except ApplicationError as e:
                logger.warning(
                    "Could not record job attempt",
                    extra={"queue": self.queue, "event_id": envelope.event_id, "error": e.message},
                )
                return RetryableError(reason=e.message, code=e.code, error=e)

            if ticket.already_delivered:
                self._log("skipped", envelope.event_id, status=str(ticket.status))
                return Success(
                    message_id=ticket.external_id or envelope.event_id,
                    user_id=payload.user_id,
                    email=payload.email,
                    duplicate=True,
                )
            self._log(
                "recorded",
                envelope.event_id,
                notification_id=ticket.notification_id,
                attempt=ticket.attempt_count,
            )

        try:
            html_body, text_body = self._render(envelope)
        except TemplateError as e:
            logger.error(
                "Job failed: template error",
                extra={"queue": self.queue, "event_id": envelope.event_id, "template": e.template_name},
            )
            await self._record_failure(ticket, e, e.code, retryable=False)
            return TerminalError(reason=e.message, code=e.code, error=e)

        self._log("rendered", envelope.event_id)

        try:
            async with delivery_slot(self.transport.name):
                receipt = await self.transport.send(
                    payload.email,
                    self.profile.subject,
                    html_body,
                    text_body,
                    to_name=payload.username,
                )
        except TransportError as e:
            logger.warning(
                "Job failed: transport error",
                extra={
                    "queue": self.queue,
                    "event_id": envelope.event_id,
                    "transport": e.transport,
                    "status_code": e.status_code,
                },
            )
            await self._record_failure(ticket, e, e.code, retryable=True)
            return RetryableError(reason=e.message, code=e.code, error=e)

        self._log("sent", envelope.event_id, message_id=receipt.message_id, transport=receipt.transport)
        await self._record_sent(ticket, receipt.message_id)

        return Success(
            message_id=receipt.message_id or envelope.event_id,
            user_id=payload.user_id,
            email=payload.email,
        )

    async def _record_sent(self, ticket: AttemptTicket | None, message_id: str | None) -> None:
        if self.recorder is None or ticket is None:
            return
        try:
            await self.recorder.record_sent(ticket.notification_id, message_id)
        except ApplicationError as e:
            logger.error(
                "Email sent but status not recorded",
                extra={"notification_id": ticket.notification_id, "message_id": message_id, "error": e.message},
            )

    async def _record_failure(
        self,
        ticket: AttemptTicket | None,
        error: ApplicationError,
        code: str,
        retryable: bool,
    ) -> None:
        if self.recorder is None or ticket is None:
            return
        try:
            await self.recorder.record_failure(ticket.notification_id, error, code, retryable)
        except ApplicationError as e:
            logger.error(
                "Job failure not recorded",
                extra={"notification_id": ticket.notification_id, "error": e.message},
            )

    async def abandon(self, raw_message: Any, error: BaseException, code: str) -> None:
        """Close the record of an attempt that was interrupted before it could report."""
        event_id = raw_message.get("eventId") if isinstance(raw_message, dict) else None
        if self.recorder is None or not isinstance(event_id, str):
            return
        try:
            closed = await self.recorder.fail_in_flight(event_id, error, code)
        except ApplicationError as e:
            logger.error(
                "Interrupted job not recorded",
                extra={"queue": self.queue, "event_id": event_id, "error": e.message},
            )
            return
        if closed:
            self._log("abandoned", event_id, code=code)
