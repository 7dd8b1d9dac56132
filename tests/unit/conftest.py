"""
Unit Test Fixtures.

External dependencies of unit tests (Redis, the broker, email providers) are
mocked here. Tests that need persistence use the in-memory SQLite
fixtures from the root conftest.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from modules.notifier.core.exceptions import TemplateLoadError
from modules.notifier.health.monitor import QueueHealthMonitor
from modules.notifier.runtime import create_renderer
from modules.notifier.templates import TemplateRenderer


# =============================================================================
# Redis Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_redis() -> MagicMock:
    """
    Mock redis.asyncio client.

    ping succeeds by default; set `mock_redis.ping.side_effect` to simulate
    an unreachable server.
    """
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def monitor(mock_redis: MagicMock) -> QueueHealthMonitor:
    """A monitor with no background probe and no backoff between attempts."""
    return QueueHealthMonitor(
        mock_redis,
        host="localhost",
        port=6379,
        max_attempts=3,
        retry_step_ms=0,
        retry_max_delay_ms=0,
        connect_timeout=0.5,
        probe_interval=0,
    )


# =============================================================================
# Broker Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_broker() -> MagicMock:
    """Mock FastStream RedisBroker. Published messages are on publish.call_args_list."""
    broker = MagicMock()
    broker.publish = AsyncMock()
    broker.connect = AsyncMock()
    broker.close = AsyncMock()
    return broker


# =============================================================================
# Template Fixtures
# =============================================================================


class DictTemplateStore:
    """Template store backed by a dict; counts reads per name."""

    def __init__(self, templates: dict[str, str]) -> None:
        self.templates = templates
        self.reads: dict[str, int] = {}

    def read(self, name: str) -> str:
        self.reads[name] = self.reads.get(name, 0) + 1
        if name not in self.templates:
            raise TemplateLoadError(name, "not in store")
        return self.templates[name]


@pytest.fixture
def template_store() -> DictTemplateStore:
    return DictTemplateStore({
        "greeting.html": "<p>Hello {{username}}, open <a href=\"{{link}}\">{{link}}</a></p>",
        "greeting.txt": "Hello {{username}}\n{{link}}\n",
        "broken.html": "<p>{{ username </p>",
    })


@pytest.fixture
def renderer(app_config) -> TemplateRenderer:
    """Renderer over the real templates/email directory."""
    return create_renderer(app_config)


# =============================================================================
# Settings Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_app_config() -> MagicMock:
    """
    Mock YAML application configuration with attribute access.

    Usage:
        def test_with_config(mock_app_config):
            with patch("module.get_app_config", return_value=mock_app_config):
                # Test code that uses app config
    """
    config = MagicMock()
    config.application.name = "Test Notifier"
    config.application.producer_name = "notification-service"
    config.events.streams.default_maxlen = 1000
    config.events.dlq.enabled = True
    config.events.dlq.stream_prefix = "dlq"
    config.events.acknowledgements.stream = "notification-events"
    config.features.events_publish_enabled = True
    config.features.notifications_sync_fallback_enabled = True
    config.features.notifications_maintenance_enabled = True
    return config
