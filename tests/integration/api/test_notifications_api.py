"""
Integration tests for the notification lifecycle endpoints.
"""

DISPATCH_URL = "/api/v1/notifications/dispatch"
BASE_URL = "/api/v1/notifications"


async def _dispatch(client, api, message: dict) -> str:
    response = await client.post(DISPATCH_URL, json=message)
    return api.assert_success(response, 202)["data"]["notification_id"]


class TestListNotifications:
    async def test_filters_by_user_and_paginates(self, client, api, verification_message, password_reset_message):
        for i in range(3):
            await _dispatch(client, api, verification_message(eventId=f"evt-{i}"))
        await _dispatch(client, api, password_reset_message())

        response = await client.get(BASE_URL, params={"user_id": "user-1", "limit": 2})

        data = api.assert_success(response)
        assert len(data["data"]) == 2
        assert data["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
        assert all(item["user_id"] == "user-1" for item in data["data"])

    async def test_filters_by_status_and_type(self, client, api, verification_message, password_reset_message):
        await _dispatch(client, api, verification_message())
        await _dispatch(client, api, password_reset_message())

        response = await client.get(BASE_URL, params={"status": "QUEUED", "type": "PASSWORD_RESET"})

        data = api.assert_success(response)
        assert [item["recipient"] for item in data["data"]] == ["bob@example.com"]

    async def test_limit_is_capped(self, client, api):
        response = await client.get(BASE_URL, params={"limit": 10_000})

        assert api.assert_success(response)["pagination"]["limit"] == 200

    async def test_unknown_status_rejected(self, client, api):
        response = await client.get(BASE_URL, params={"status": "LOST"})

        api.assert_validation_error(response, field="status")


class TestGetNotification:
    async def test_returns_record(self, client, api, verification_message):
        notification_id = await _dispatch(client, api, verification_message())

        data = api.assert_success(await client.get(f"{BASE_URL}/{notification_id}"))["data"]

        assert data["id"] == notification_id
        assert data["type"] == "EMAIL_VERIFICATION"
        assert data["channel"] == "EMAIL"
        assert data["subject"].startswith("Vérification")
        assert data["payload"]["eventId"] == "evt-1"

    async def test_unknown_id(self, client, api):
        response = await client.get(f"{BASE_URL}/does-not-exist")

        api.assert_error(response, 404, "NOTIF_NOT_FOUND")


class TestUpdateStatus:
    async def test_walks_the_lifecycle(self, client, api, verification_message):
        notification_id = await _dispatch(client, api, verification_message())
        url = f"{BASE_URL}/{notification_id}/status"

        processing = api.assert_success(await client.patch(url, json={"status": "PROCESSING"}))["data"]
        assert processing["attempt_count"] == 1

        sent = api.assert_success(
            await client.patch(url, json={"status": "SENT", "external_id": "relay-7"})
        )["data"]
        assert sent["external_id"] == "relay-7"

        delivered = api.assert_success(await client.patch(url, json={"status": "DELIVERED"}))["data"]
        assert delivered["status"] == "DELIVERED"
        assert delivered["delivered_at"] is not None

    async def test_invalid_transition_is_conflict(self, client, api, verification_message):
        notification_id = await _dispatch(client, api, verification_message())

        response = await client.patch(f"{BASE_URL}/{notification_id}/status", json={"status": "DELIVERED"})

        api.assert_error(response, 409, "NOTIF_INVALID_TRANSITION")
        record = api.assert_success(await client.get(f"{BASE_URL}/{notification_id}"))["data"]
        assert record["status"] == "QUEUED"

    async def test_cancel_queued(self, client, api, verification_message):
        notification_id = await _dispatch(client, api, verification_message())

        response = await client.patch(f"{BASE_URL}/{notification_id}/status", json={"status": "CANCELLED"})

        assert api.assert_success(response)["data"]["status"] == "CANCELLED"


class TestMaintenanceQueries:
    async def test_retryable_lists_failed_sync_sends(self, client, api, runtime, transport, verification_message):
        runtime.monitor.mark_unavailable("connection refused")
        transport.failures = 1
        response = await client.post(DISPATCH_URL, json=verification_message())
        notification_id = api.assert_error(response, 502, "EMAIL_SEND_FAILED")["error"]["details"]["notification_id"]

        data = api.assert_success(await client.get(f"{BASE_URL}/failed/retryable"))["data"]

        assert [item["id"] for item in data] == [notification_id]
        assert data[0]["error_code"] == "EMAIL_SEND_FAILED"

    async def test_scheduled_ready_excludes_future(self, client, api, verification_message):
        await client.post(
            DISPATCH_URL, json=verification_message(), params={"scheduled_for": "2099-01-01T00:00:00Z"},
        )

        data = api.assert_success(await client.get(f"{BASE_URL}/scheduled/ready"))["data"]

        assert data == []

    async def test_stats(self, client, api, runtime, verification_message, password_reset_message):
        await _dispatch(client, api, verification_message())
        runtime.monitor.mark_unavailable("connection refused")
        await _dispatch(client, api, password_reset_message())

        data = api.assert_success(await client.get(f"{BASE_URL}/stats/global"))["data"]

        assert data["total"] == 2
        assert data["by_status"] == {"QUEUED": 1, "SENT": 1}
        assert data["by_channel"] == {"EMAIL": 2}

    async def test_cleanup_removes_finished_records(self, client, api, runtime, verification_message):
        runtime.monitor.mark_unavailable("connection refused")
        sent_id = await _dispatch(client, api, verification_message())
        runtime.monitor.mark_available()
        queued_id = await _dispatch(client, api, verification_message(eventId="evt-queued"))

        response = await client.delete(f"{BASE_URL}/cleanup/0")

        assert api.assert_success(response)["data"] == {"deleted": 1, "days": 0}
        api.assert_error(await client.get(f"{BASE_URL}/{sent_id}"), 404)
        api.assert_success(await client.get(f"{BASE_URL}/{queued_id}"))

    async def test_cleanup_rejects_negative_days(self, client, api):
        response = await client.delete(f"{BASE_URL}/cleanup/-1")

        api.assert_validation_error(response)
