"""
Integration tests for user contact details and preferences.
"""

BASE_URL = "/api/v1/users"


class TestUpsertUser:
    async def test_creates_with_default_preferences(self, client, api):
        response = await client.put(f"{BASE_URL}/user-1", json={"email": "alice@example.com", "username": "Alice"})

        data = api.assert_success(response)["data"]
        assert data["id"] == "user-1"
        assert data["email_enabled"] is True
        assert data["transactional_enabled"] is True
        assert data["marketing_enabled"] is False

    async def test_updates_contact_details_and_keeps_preferences(self, client, api):
        await client.put(f"{BASE_URL}/user-1", json={"email": "alice@example.com"})
        await client.patch(f"{BASE_URL}/user-1/preferences", json={"marketing_enabled": True})

        response = await client.put(f"{BASE_URL}/user-1", json={"email": "alice@new.example.com"})

        data = api.assert_success(response)["data"]
        assert data["email"] == "alice@new.example.com"
        assert data["marketing_enabled"] is True

    async def test_invalid_email(self, client, api):
        response = await client.put(f"{BASE_URL}/user-1", json={"email": "not-an-email"})

        api.assert_validation_error(response, field="email")


class TestPreferences:
    async def test_partial_update(self, client, api):
        await client.put(f"{BASE_URL}/user-1", json={"email": "alice@example.com"})

        response = await client.patch(f"{BASE_URL}/user-1/preferences", json={"email_enabled": False})

        data = api.assert_success(response)["data"]
        assert data["email_enabled"] is False
        assert data["transactional_enabled"] is True

    async def test_unknown_user(self, client, api):
        response = await client.get(f"{BASE_URL}/ghost/preferences")

        api.assert_error(response, 404, "USER_NOT_FOUND")
