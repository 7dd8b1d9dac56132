"""
Event Broker.

FastStream RedisBroker setup. The broker connects to the same Redis instance
the queue monitor watches; the API process uses it to publish, the consumer
process also subscribes through it.

Usage:
    from modules.notifier.events.broker import create_event_broker

    broker = create_event_broker()
"""

from faststream import FastStream
from faststream.redis import RedisBroker

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)


def create_event_broker(redis_url: str | None = None) -> RedisBroker:
    """Create a new RedisBroker with the job context middleware installed.

    Args:
        redis_url: Override the URL built from database.yaml and secrets

    Returns:
        Configured RedisBroker instance
    """
    from modules.notifier.core.config import get_redis_url
    from modules.notifier.events.middleware import JobContextMiddleware

    broker = RedisBroker(redis_url or get_redis_url(), middlewares=(JobContextMiddleware,))
    logger.info("Event broker created")
    return broker


def create_event_app() -> FastStream:
    """Create a FastStream application for the consumer process.

    This is a factory function. FastStream CLI must be invoked with `--factory`:
        faststream run --factory modules.notifier.events.broker:create_event_app

    Returns:
        FastStream app with one consumer per email queue registered
    """
    from modules.notifier.events.consumers.email import register_email_consumers
    from modules.notifier.runtime import build_runtime

    broker = create_event_broker()
    runtime = build_runtime(broker=broker)
    register_email_consumers(broker, runtime)

    app = FastStream(broker)

    @app.on_startup
    async def start_runtime() -> None:
        # FastStream connects the broker itself after startup hooks
        await runtime.start(connect_broker=False)

    @app.after_shutdown
    async def stop_runtime() -> None:
        await runtime.stop(close_broker=False)

    logger.info("Consumer application created", extra={"queues": runtime.processors.queues})
    return app
