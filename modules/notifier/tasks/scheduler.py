"""
Maintenance Scheduler.

Fires the maintenance tasks on their cron labels:

    replay_retryable_notifications    */5 * * * *
    dispatch_scheduled_notifications  * * * * *
    purge_expired_notifications       0 2 * * *

The scheduler only enqueues; `taskiq worker` runs the tasks. Start it with:

    python cli.py --service scheduler
    taskiq scheduler modules.notifier.tasks.scheduler:scheduler

Run exactly one scheduler per deployment, otherwise every replay and purge
is enqueued once per scheduler instance.
"""

from typing import TYPE_CHECKING

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from taskiq import TaskiqScheduler

_scheduler: "TaskiqScheduler | None" = None


def create_scheduler() -> "TaskiqScheduler":
    """Build a scheduler reading the schedule labels of the registered maintenance tasks."""
    from taskiq import TaskiqScheduler
    from taskiq.schedule_sources import LabelScheduleSource

    from modules.notifier.tasks.broker import get_broker
    from modules.notifier.tasks.scheduled import register_scheduled_tasks

    broker = get_broker()
    registered = register_scheduled_tasks(broker)
    if not registered:
        logger.warning("Scheduler started with no maintenance tasks registered")

    scheduler = TaskiqScheduler(broker=broker, sources=[LabelScheduleSource(broker)])
    logger.info("Maintenance scheduler configured", extra={"tasks": sorted(registered)})
    return scheduler


def get_scheduler() -> "TaskiqScheduler":
    global _scheduler
    if _scheduler is None:
        _scheduler = create_scheduler()
    return _scheduler


def __getattr__(name: str):
    """`scheduler` is created on first access (taskiq imports it by name)."""
    if name == "scheduler":
        return get_scheduler()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
