"""Unit tests for transport selection."""

import pytest

from modules.notifier.transports.factory import create_transport
from modules.notifier.transports.http_api import HttpApiTransport
from modules.notifier.transports.smtp import SmtpTransport


def _with_transport(app_config, name: str):
    app_config._notifications = app_config.notifications.model_copy(update={"transport": name})
    return app_config


class TestCreateTransport:
    async def test_http_api(self, app_config, test_settings):
        transport = create_transport(_with_transport(app_config, "http_api"), test_settings)

        assert isinstance(transport, HttpApiTransport)
        assert transport.sender_address == app_config.notifications.sender.address
        await transport.aclose()

    def test_smtp(self, app_config, test_settings):
        transport = create_transport(_with_transport(app_config, "smtp"), test_settings)

        assert isinstance(transport, SmtpTransport)
        assert transport.host == app_config.notifications.smtp.host
        assert transport.port == app_config.notifications.smtp.port

    def test_unknown_transport(self, app_config, test_settings):
        with pytest.raises(ValueError, match="carrier-pigeon"):
            create_transport(_with_transport(app_config, "carrier-pigeon"), test_settings)
