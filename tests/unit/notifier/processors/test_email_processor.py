"""Unit tests for the email job processor."""

from unittest.mock import AsyncMock

import pytest

from modules.notifier.core.exceptions import DatabaseError
from modules.notifier.models.notification import NotificationStatus
from modules.notifier.processors.email import EmailJobProcessor, EmailJobProfile
from modules.notifier.processors.recorder import NotificationRecorder
from modules.notifier.processors.result import RetryableError, Success, TerminalError
from modules.notifier.services.notifications import NotificationService
from modules.notifier.transports.base import DeliveryReceipt

VERIFICATION_PROFILE = EmailJobProfile(
    event_type="EmailVerificationRequested",
    queue="email-verification",
    html_template="email-verification.html",
    text_template="email-verification.txt",
    subject="Verify your email",
    link_field="verification_link",
)

RESET_PROFILE = EmailJobProfile(
    event_type="PasswordResetRequested",
    queue="password-reset",
    html_template="password-reset.html",
    text_template=None,
    subject="Reset your password",
    link_field="reset_link",
)


@pytest.fixture
def recorder(db_session_factory) -> NotificationRecorder:
    return NotificationRecorder(db_session_factory, max_attempts=3, retry_backoff_seconds=0)


async def _record(db_session_factory, job_id: str):
    async with db_session_factory() as session:
        return await NotificationService(session).find_by_job_id(job_id)


# =============================================================================
# Without persistence
# =============================================================================


class TestProcessWithoutRecorder:
    async def test_success(self, renderer, transport, verification_message):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport)

        result = await processor.process(verification_message())

        assert result == Success(message_id="msg-1", user_id="user-1", email="alice@example.com")
        assert result.to_dict() == {
            "success": True,
            "messageId": "msg-1",
            "userId": "user-1",
            "email": "alice@example.com",
        }

        sent = transport.sent[0]
        assert sent["to"] == "alice@example.com"
        assert sent["to_name"] == "Alice"
        assert sent["subject"] == "Verify your email"
        assert "https://app.example.com/verify?token=tok-123" in sent["text"]
        assert "Alice" in sent["html"]

    async def test_expiry_formatted_for_recipient_locale(self, renderer, transport, verification_message):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport)

        await processor.process(verification_message(payload={"locale": "en"}))

        assert "January" in transport.sent[0]["text"]

    async def test_expiry_formatted_in_default_locale(self, renderer, transport, verification_message):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport)

        await processor.process(verification_message())

        assert "janvier" in transport.sent[0]["text"]

    async def test_reset_uses_reset_link_and_no_text_part(self, renderer, transport, password_reset_message):
        processor = EmailJobProcessor(RESET_PROFILE, renderer, transport)

        result = await processor.process(password_reset_message())

        assert isinstance(result, Success)
        assert transport.sent[0]["text"] is None
        assert "reset?token=reset-456" in transport.sent[0]["html"]

    async def test_invalid_payload_is_terminal(self, renderer, transport, verification_message):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport)

        result = await processor.process(verification_message(payload={"email": "nope"}))

        assert isinstance(result, TerminalError)
        assert result.code == "EVT_INVALID_PAYLOAD"
        assert transport.sent == []

    async def test_wrong_queue_message_is_terminal(self, renderer, transport, password_reset_message):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport)

        result = await processor.process(password_reset_message())

        assert isinstance(result, TerminalError)

    async def test_transport_failure_is_retryable(self, renderer, transport, verification_message):
        transport.failures = 1
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport)

        result = await processor.process(verification_message())

        assert isinstance(result, RetryableError)
        assert result.code == "EMAIL_SEND_FAILED"

    async def test_missing_template_is_terminal(self, renderer, transport, verification_message):
        profile = EmailJobProfile(
            event_type="EmailVerificationRequested",
            queue="email-verification",
            html_template="does-not-exist.html",
            text_template=None,
            subject="S",
            link_field="verification_link",
        )
        processor = EmailJobProcessor(profile, renderer, transport)

        result = await processor.process(verification_message())

        assert isinstance(result, TerminalError)
        assert result.code == "TEMPLATE_LOAD_FAILED"
        assert transport.sent == []


# =============================================================================
# With lifecycle recording
# =============================================================================


class TestProcessWithRecorder:
    async def test_success_records_sent(
        self, renderer, transport, recorder, db_session_factory, verification_message,
    ):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        await processor.process(verification_message())

        record = await _record(db_session_factory, "evt-1")
        assert record.status == NotificationStatus.SENT
        assert record.external_id == "msg-1"
        assert record.attempt_count == 1
        assert record.subject == "Verify your email"

    async def test_provider_without_message_id_leaves_external_id_empty(
        self, renderer, transport, recorder, db_session_factory, verification_message,
    ):
        transport.send = AsyncMock(return_value=DeliveryReceipt(message_id=None, transport="http_api"))
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        result = await processor.process(verification_message())

        assert result.message_id == "evt-1"
        record = await _record(db_session_factory, "evt-1")
        assert record.status == NotificationStatus.SENT
        assert record.external_id is None

    async def test_redelivered_job_is_not_sent_twice(
        self, renderer, transport, recorder, verification_message,
    ):
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        first = await processor.process(verification_message())
        second = await processor.process(verification_message())

        assert len(transport.sent) == 1
        assert second.duplicate is True
        assert second.message_id == first.message_id

    async def test_transport_failure_records_retryable_failure(
        self, renderer, transport, recorder, db_session_factory, verification_message,
    ):
        transport.failures = 1
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        await processor.process(verification_message())

        record = await _record(db_session_factory, "evt-1")
        assert record.status == NotificationStatus.FAILED
        assert record.error_code == "EMAIL_SEND_FAILED"
        assert record.next_retry_at is not None
        assert "TransportError" in record.error_stack

    async def test_retry_after_failure_succeeds(
        self, renderer, transport, recorder, db_session_factory, verification_message,
    ):
        transport.failures = 1
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        await processor.process(verification_message())
        result = await processor.process(verification_message())

        assert isinstance(result, Success)
        record = await _record(db_session_factory, "evt-1")
        assert record.status == NotificationStatus.SENT
        assert record.attempt_count == 2

    async def test_exhausted_budget_is_terminal(
        self, renderer, transport, recorder, db_session_factory, verification_message,
    ):
        transport.failures = 10
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        results = [await processor.process(verification_message()) for _ in range(4)]

        assert [type(r) for r in results] == [RetryableError, RetryableError, RetryableError, TerminalError]
        assert results[-1].code == "NOTIF_ATTEMPTS_EXHAUSTED"
        record = await _record(db_session_factory, "evt-1")
        assert record.attempt_count == 3
        assert record.next_retry_at is None

    async def test_template_failure_records_terminal_failure(
        self, renderer, transport, recorder, db_session_factory, verification_message,
    ):
        profile = EmailJobProfile(
            event_type="EmailVerificationRequested",
            queue="email-verification",
            html_template="does-not-exist.html",
            text_template=None,
            subject="S",
            link_field="verification_link",
        )
        processor = EmailJobProcessor(profile, renderer, transport, recorder)

        await processor.process(verification_message())

        record = await _record(db_session_factory, "evt-1")
        assert record.status == NotificationStatus.FAILED
        assert record.next_retry_at is None
        assert record.max_attempts == record.attempt_count

    async def test_recorder_outage_is_retryable(self, renderer, transport, verification_message):
        recorder = AsyncMock()
        recorder.start_attempt.side_effect = DatabaseError("down")
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        result = await processor.process(verification_message())

        assert isinstance(result, RetryableError)
        assert result.code == "SYS_DATABASE_ERROR"
        assert transport.sent == []

    async def test_unrecorded_success_still_succeeds(self, renderer, transport, verification_message):
        recorder = AsyncMock()
        recorder.start_attempt.return_value.already_delivered = False
        recorder.record_sent.side_effect = DatabaseError("down")
        processor = EmailJobProcessor(VERIFICATION_PROFILE, renderer, transport, recorder)

        result = await processor.process(verification_message())

        assert isinstance(result, Success)
        assert len(transport.sent) == 1
