"""
Integration tests for POST /api/v1/notifications/dispatch.

Covers both delivery modes: enqueue while the queue is reachable, inline
processing (with a warning) when it is not.
"""

DISPATCH_URL = "/api/v1/notifications/dispatch"


def _published_streams(event_broker) -> list[str]:
    return [call.kwargs["stream"] for call in event_broker.publish.call_args_list]


class TestAsyncDispatch:
    async def test_enqueues_and_marks_queued(self, client, api, event_broker, transport, verification_message):
        response = await client.post(DISPATCH_URL, json=verification_message())

        data = api.assert_success(response, 202)["data"]
        assert data["mode"] == "async"
        assert data["status"] == "QUEUED"
        assert data["warning"] is None
        assert _published_streams(event_broker) == ["email-verification"]
        assert transport.sent == []

        published = event_broker.publish.call_args_list[0].args[0]
        assert published["eventId"] == "evt-1"
        assert published["payload"]["verificationLink"] == "https://app.example.com/verify?token=tok-123"

    async def test_password_reset_goes_to_its_queue(self, client, api, event_broker, password_reset_message):
        response = await client.post(DISPATCH_URL, json=password_reset_message())

        api.assert_success(response, 202)
        assert _published_streams(event_broker) == ["password-reset"]

    async def test_request_id_is_stored(self, client, api, verification_message):
        response = await client.post(
            DISPATCH_URL, json=verification_message(), headers={"X-Request-ID": "req-42"},
        )

        notification_id = api.assert_success(response, 202)["data"]["notification_id"]
        record = api.assert_success(await client.get(f"/api/v1/notifications/{notification_id}"))["data"]
        assert record["metadata"]["request_id"] == "req-42"
        assert record["job_id"] == "evt-1"

    async def test_duplicate_event_returns_existing_record(self, client, api, event_broker, verification_message):
        first = api.assert_success(await client.post(DISPATCH_URL, json=verification_message()), 202)
        second = api.assert_success(await client.post(DISPATCH_URL, json=verification_message()), 202)

        assert second["data"]["mode"] == "duplicate"
        assert second["data"]["notification_id"] == first["data"]["notification_id"]
        assert event_broker.publish.await_count == 1

    async def test_job_failed_by_consumer_before_queued_is_not_a_conflict(
        self, client, api, event_broker, db_session_factory, verification_message,
    ):
        from modules.notifier.core.exceptions import TemplateLoadError
        from modules.notifier.events.contracts import validate
        from modules.notifier.processors.recorder import NotificationRecorder

        recorder = NotificationRecorder(db_session_factory, max_attempts=3, retry_backoff_seconds=0)

        async def consume_immediately(message, **kwargs):
            envelope = validate("EmailVerificationRequested", message)
            ticket = await recorder.start_attempt(envelope)
            error = TemplateLoadError("email-verification.html", "missing")
            await recorder.record_failure(ticket.notification_id, error, error.code, retryable=False)

        event_broker.publish.side_effect = consume_immediately

        response = await client.post(DISPATCH_URL, json=verification_message())

        data = api.assert_success(response, 202)["data"]
        assert data["mode"] == "async"
        assert data["status"] == "FAILED"

    async def test_publish_failure_falls_back_to_sync(
        self, client, api, runtime, event_broker, transport, verification_message,
    ):
        from redis.exceptions import ConnectionError as RedisConnectionError

        event_broker.publish.side_effect = RedisConnectionError("refused")

        response = await client.post(DISPATCH_URL, json=verification_message())

        data = api.assert_success(response, 202)["data"]
        assert data["mode"] == "sync"
        assert data["status"] == "SENT"
        assert runtime.mode == "sync"
        assert len(transport.sent) == 1


class TestSyncDispatch:
    async def test_processes_inline_with_warning(self, client, api, runtime, event_broker, transport, verification_message):
        runtime.monitor.mark_unavailable("connection refused")

        response = await client.post(DISPATCH_URL, json=verification_message())

        body = api.assert_success(response, 202)
        data = body["data"]
        assert data["mode"] == "sync"
        assert data["status"] == "SENT"
        assert data["message_id"] == "msg-1"
        assert "synchronously" in body["warning"]
        event_broker.publish.assert_not_awaited()
        assert transport.sent[0]["to"] == "alice@example.com"

    async def test_sync_path_never_queues(self, client, api, runtime, verification_message):
        runtime.monitor.mark_unavailable("connection refused")

        response = await client.post(DISPATCH_URL, json=verification_message())

        notification_id = response.json()["data"]["notification_id"]
        record = api.assert_success(await client.get(f"/api/v1/notifications/{notification_id}"))["data"]
        assert record["status"] == "SENT"
        assert record["queued_at"] is None
        assert record["attempt_count"] == 1
        assert record["external_id"] == "msg-1"

    async def test_transport_failure_is_reported(self, client, api, runtime, transport, verification_message):
        runtime.monitor.mark_unavailable("connection refused")
        transport.failures = 1

        response = await client.post(DISPATCH_URL, json=verification_message())

        body = api.assert_error(response, 502, "EMAIL_SEND_FAILED")
        assert body["error"]["message"] == "relay unavailable"
        assert body["warning"]
        details = body["error"]["details"]
        assert details["status"] == "FAILED"
        assert details["mode"] == "sync"

        record = api.assert_success(await client.get(f"/api/v1/notifications/{details['notification_id']}"))["data"]
        assert record["status"] == "FAILED"
        assert record["error_code"] == "EMAIL_SEND_FAILED"

    async def test_fallback_disabled_returns_503(self, client, api, runtime, transport, verification_message):
        runtime.monitor.mark_unavailable("connection refused")
        runtime.app_config._features = runtime.app_config.features.model_copy(
            update={"notifications_sync_fallback_enabled": False}
        )

        response = await client.post(DISPATCH_URL, json=verification_message())

        api.assert_error(response, 503, "QUEUE_UNAVAILABLE")
        assert transport.sent == []


class TestDispatchRouting:
    async def test_scheduled_request_stays_pending(self, client, api, event_broker, verification_message):
        response = await client.post(
            DISPATCH_URL,
            json=verification_message(),
            params={"scheduled_for": "2099-01-01T00:00:00Z"},
        )

        data = api.assert_success(response, 202)["data"]
        assert data["mode"] == "scheduled"
        assert data["status"] == "PENDING"
        event_broker.publish.assert_not_awaited()

    async def test_opted_out_user_is_skipped(self, client, api, event_broker, verification_message):
        api.assert_success(await client.put("/api/v1/users/user-1", json={"email": "alice@example.com"}))
        api.assert_success(
            await client.patch("/api/v1/users/user-1/preferences", json={"email_enabled": False})
        )

        response = await client.post(DISPATCH_URL, json=verification_message())

        data = api.assert_success(response, 202)["data"]
        assert data["mode"] == "skipped"
        assert data["status"] == "CANCELLED"
        event_broker.publish.assert_not_awaited()


class TestDispatchValidation:
    async def test_invalid_email_rejected(self, client, api, verification_message):
        response = await client.post(DISPATCH_URL, json=verification_message(payload={"email": "nope"}))

        data = api.assert_error(response, 400, "EVT_INVALID_PAYLOAD")
        assert data["error"]["details"]

    async def test_unsupported_version_rejected(self, client, api, verification_message):
        response = await client.post(DISPATCH_URL, json=verification_message(eventVersion=2))

        api.assert_error(response, 400, "EVT_INVALID_PAYLOAD")

    async def test_acknowledgement_event_rejected(self, client, api, verification_message):
        response = await client.post(DISPATCH_URL, json=verification_message(eventType="EmailVerificationSent"))

        api.assert_error(response, 400, "EVT_INVALID_PAYLOAD")

    async def test_nothing_recorded_for_rejected_request(self, client, api, verification_message):
        await client.post(DISPATCH_URL, json=verification_message(payload={"token": ""}))

        listing = api.assert_success(await client.get("/api/v1/notifications"))
        assert listing["pagination"]["total"] == 0
