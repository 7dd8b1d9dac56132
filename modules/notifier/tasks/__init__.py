"""
Background Tasks Package.

Taskiq-based maintenance of notification records with a Redis backend:
retry replay, scheduled dispatch and retention purge (see
modules.notifier.tasks.scheduled).

Usage (with Redis - production):
    from modules.notifier.tasks import get_broker, register_scheduled_tasks

    broker = get_broker()
    scheduled = register_scheduled_tasks()

    # Trigger a run outside the schedule
    await scheduled["purge_expired_notifications"].kiq(retention_days=30)

Usage (without Redis - testing):
    # Import task functions directly and pass a runtime
    from modules.notifier.tasks.scheduled import replay_retryable_notifications

    result = await replay_retryable_notifications(runtime=runtime)

CLI Commands:
    python cli.py --service worker
    python cli.py --service scheduler

    # Or directly with taskiq
    taskiq worker modules.notifier.tasks:broker
    taskiq scheduler modules.notifier.tasks.scheduler:scheduler

Important:
    Run only ONE scheduler instance to avoid duplicate task execution.
"""

from modules.notifier.tasks.broker import get_broker
from modules.notifier.tasks.scheduled import (
    SCHEDULED_TASKS,
    dispatch_scheduled_notifications,
    purge_expired_notifications,
    register_scheduled_tasks,
    replay_retryable_notifications,
)
from modules.notifier.tasks.scheduler import get_scheduler

__all__ = [
    # Broker and scheduler
    "get_broker",
    "get_scheduler",
    # Registration
    "register_scheduled_tasks",
    "SCHEDULED_TASKS",
    # Task functions (can be called directly without Redis)
    "replay_retryable_notifications",
    "dispatch_scheduled_notifications",
    "purge_expired_notifications",
]


def __getattr__(name: str):
    """Lazy attribute access for broker (with tasks registered) and scheduler."""
    if name == "broker":
        broker = get_broker()
        register_scheduled_tasks(broker)
        return broker
    if name == "scheduler":
        return get_scheduler()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
