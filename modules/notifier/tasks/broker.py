"""
Maintenance Task Broker.

Taskiq ListQueueBroker for the maintenance tasks. It uses the Redis instance
from database.yaml but its own list queue, separate from the email streams
FastStream consumes, so a backlog of emails never delays a retry replay.

Each worker process owns one NotifierRuntime, started on WORKER_STARTUP and
stopped on WORKER_SHUTDOWN. Replayed and scheduled notifications go through
that runtime's queue adapter, or are processed inline while Redis streams
are unavailable.

Usage:
    python cli.py --service worker
    taskiq worker modules.notifier.tasks:broker
"""

from typing import TYPE_CHECKING, Any

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from taskiq_redis import ListQueueBroker

    from modules.notifier.runtime import NotifierRuntime

_broker: "ListQueueBroker | None" = None
_runtime: "NotifierRuntime | None" = None


def create_broker(redis_url: str | None = None) -> "ListQueueBroker":
    """ListQueueBroker with a Redis result backend, from database.yaml's redis.broker section."""
    from taskiq_redis import ListQueueBroker, RedisAsyncResultBackend

    from modules.notifier.core.config import get_app_config, get_redis_url

    url = redis_url or get_redis_url()
    broker_config = get_app_config().database.redis.broker

    broker = ListQueueBroker(url=url, queue_name=broker_config.queue_name).with_result_backend(
        RedisAsyncResultBackend(redis_url=url, result_ex_time=broker_config.result_expiry_seconds),
    )
    logger.debug(
        "Maintenance broker configured",
        extra={
            "queue_name": broker_config.queue_name,
            "result_expiry": broker_config.result_expiry_seconds,
        },
    )
    return broker


def get_task_runtime() -> "NotifierRuntime":
    """The runtime shared by the tasks of this worker process."""
    global _runtime
    if _runtime is None:
        from modules.notifier.runtime import build_runtime

        _runtime = build_runtime()
    return _runtime


async def start_worker_runtime(state: Any = None) -> None:
    runtime = get_task_runtime()
    await runtime.start()
    logger.info("Maintenance worker started", extra={"mode": runtime.mode})


async def stop_worker_runtime(state: Any = None) -> None:
    global _runtime
    if _runtime is None:
        return
    await _runtime.stop()
    _runtime = None
    logger.info("Maintenance worker stopped")


def get_broker() -> "ListQueueBroker":
    """The process-wide broker, with the worker runtime hooks installed."""
    global _broker
    if _broker is None:
        from taskiq import TaskiqEvents

        _broker = create_broker()
        _broker.add_event_handler(TaskiqEvents.WORKER_STARTUP, start_worker_runtime)
        _broker.add_event_handler(TaskiqEvents.WORKER_SHUTDOWN, stop_worker_runtime)
    return _broker


def __getattr__(name: str):
    if name == "broker":
        return get_broker()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
