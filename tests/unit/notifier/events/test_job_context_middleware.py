"""Unit tests for the job context middleware."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from modules.notifier.events.middleware import JobContextMiddleware, envelope_identifiers


class TestEnvelopeIdentifiers:
    def test_reads_envelope_ids(self):
        ids = envelope_identifiers({"eventId": "evt-1", "eventType": "EmailVerificationRequested"})
        assert ids == {
            "event_id": "evt-1",
            "event_type": "EmailVerificationRequested",
            "job_id": "evt-1",
        }

    @pytest.mark.parametrize("body", [None, "not json", [1, 2], {}])
    def test_unknown_for_malformed_bodies(self, body):
        assert envelope_identifiers(body)["event_id"] == "unknown"


class TestJobContextMiddleware:
    @pytest.fixture
    def message(self):
        msg = MagicMock()
        msg.decode = AsyncMock(return_value={"eventId": "evt-9", "eventType": "PasswordResetRequested"})
        return msg

    async def test_binds_then_clears_context(self, message):
        middleware = JobContextMiddleware(message)

        await middleware.on_consume(message)
        context = structlog.contextvars.get_contextvars()
        assert context["event_id"] == "evt-9"
        assert context["job_id"] == "evt-9"
        assert context["source"] == "events"

        with patch("modules.notifier.events.middleware.logger") as mock_logger:
            await middleware.after_consume(None)

        mock_logger.info.assert_called_once()
        assert "event_id" not in structlog.contextvars.get_contextvars()

    async def test_logs_handler_errors(self, message):
        middleware = JobContextMiddleware(message)
        await middleware.on_consume(message)

        with patch("modules.notifier.events.middleware.logger") as mock_logger:
            with pytest.raises(RuntimeError, match="boom"):
                await middleware.after_consume(RuntimeError("boom"))

        extra = mock_logger.error.call_args[1]["extra"]
        assert extra["error_type"] == "RuntimeError"
        assert extra["duration_ms"] is not None
