"""
Notifier Runtime.

Owns the long-lived collaborators shared by the API process and the
consumer process: the Redis handle (through the queue monitor), the event
broker and publisher, the template renderer, the email transport and the
per-queue processors. Nothing here is a module-level singleton; the API
keeps its runtime on app.state, the consumer app keeps it in its closure.

Usage:
    runtime = build_runtime()
    await runtime.start()
    ...
    await runtime.stop()
"""

from dataclasses import dataclass

from faststream.redis import RedisBroker
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.notifier.core.config import AppConfig, Settings, find_project_root, get_app_config, get_settings
from modules.notifier.core.logging import get_logger
from modules.notifier.events.publishers import PUBLISH_ERRORS, NotificationEventPublisher
from modules.notifier.health.monitor import QueueHealthMonitor
from modules.notifier.processors.recorder import NotificationRecorder
from modules.notifier.processors.registry import ProcessorRegistry, build_processors
from modules.notifier.templates import DateFormatter, FileTemplateStore, TemplateRenderer
from modules.notifier.transports.base import EmailTransport
from modules.notifier.transports.factory import create_transport

logger = get_logger(__name__)


@dataclass
class NotifierRuntime:
    app_config: AppConfig
    monitor: QueueHealthMonitor
    broker: RedisBroker
    publisher: NotificationEventPublisher
    renderer: TemplateRenderer
    transport: EmailTransport
    recorder: NotificationRecorder
    processors: ProcessorRegistry
    session_factory: async_sessionmaker[AsyncSession]

    @property
    def mode(self) -> str:
        """'async' while the queue backend is usable, 'sync' otherwise."""
        return "async" if self.monitor.is_available() else "sync"

    async def start(self, connect_broker: bool = True) -> bool:
        """Run the bounded connect and (optionally) connect the publishing broker."""
        available = await self.monitor.start()
        if connect_broker and available:
            try:
                await self.broker.connect()
            except PUBLISH_ERRORS as e:
                self.monitor.mark_unavailable(f"Broker connect failed: {e}")

        logger.info(
            "Notifier runtime started",
            extra={"mode": self.mode, "queues": self.processors.queues, "transport": self.transport.name},
        )
        return self.monitor.is_available()

    async def stop(self, close_broker: bool = True) -> None:
        await self.monitor.stop()
        await self.transport.aclose()
        if close_broker:
            await self.broker.close()
        logger.info("Notifier runtime stopped")


def create_redis_client(app_config: AppConfig, settings: Settings) -> Redis:
    redis = app_config.database.redis
    timeout = redis.monitor.connect_timeout_seconds
    return Redis(
        host=redis.host,
        port=redis.port,
        db=redis.db,
        password=settings.redis_password or None,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )


def create_monitor(app_config: AppConfig, client: Redis) -> QueueHealthMonitor:
    redis = app_config.database.redis
    monitor = redis.monitor
    return QueueHealthMonitor(
        client,
        host=redis.host,
        port=redis.port,
        max_attempts=monitor.max_connect_attempts,
        retry_step_ms=monitor.retry_step_ms,
        retry_max_delay_ms=monitor.retry_max_delay_ms,
        connect_timeout=monitor.connect_timeout_seconds,
        probe_interval=monitor.probe_interval_seconds,
    )


def create_renderer(app_config: AppConfig) -> TemplateRenderer:
    templates = app_config.notifications.templates
    directory = find_project_root() / templates.directory
    return TemplateRenderer(
        FileTemplateStore(directory),
        DateFormatter(
            locale=templates.locale,
            tz_name=templates.timezone,
            pattern=templates.datetime_pattern,
        ),
    )


def build_runtime(
    app_config: AppConfig | None = None,
    settings: Settings | None = None,
    broker: RedisBroker | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: EmailTransport | None = None,
    monitor: QueueHealthMonitor | None = None,
    renderer: TemplateRenderer | None = None,
) -> NotifierRuntime:
    """Assemble a runtime from configuration. Any collaborator can be injected."""
    app_config = app_config or get_app_config()
    settings = settings or get_settings()

    if broker is None:
        from modules.notifier.events.broker import create_event_broker

        broker = create_event_broker()
    if session_factory is None:
        from modules.notifier.core.database import get_session_factory

        session_factory = get_session_factory()

    monitor = monitor or create_monitor(app_config, create_redis_client(app_config, settings))
    renderer = renderer or create_renderer(app_config)
    transport = transport or create_transport(app_config, settings)

    lifecycle = app_config.notifications.lifecycle
    recorder = NotificationRecorder(
        session_factory,
        max_attempts=lifecycle.max_attempts,
        retry_backoff_seconds=lifecycle.retry_backoff_seconds,
    )
    processors = build_processors(app_config, renderer, transport, recorder)

    return NotifierRuntime(
        app_config=app_config,
        monitor=monitor,
        broker=broker,
        publisher=NotificationEventPublisher(broker, app_config),
        renderer=renderer,
        transport=transport,
        recorder=recorder,
        processors=processors,
        session_factory=session_factory,
    )
