"""
Concurrency Infrastructure.

The thread pool for blocking SMTP sessions and the per-transport delivery
limits. Both are created lazily and released with the process.

Delivery limits cap how many sends a process has in flight against one
transport, whichever path (queue consumer or inline fallback) triggered them.
Capacities come from config/settings/concurrency.yaml:

    delivery_limits:
      smtp: 4
      http_api: 10
      default: 10

Usage:
    from modules.notifier.core.concurrency import delivery_slot, get_io_pool

    async with delivery_slot(transport.name):
        receipt = await transport.send(...)

    await loop.run_in_executor(get_io_pool(), session.sendmail, ...)
"""

import asyncio
import contextvars
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

_io_pool: ThreadPoolExecutor | None = None
_limits: dict[str, tuple[asyncio.Semaphore, int]] = {}


class TracedThreadPoolExecutor(ThreadPoolExecutor):
    """Thread pool that runs each job in a copy of the caller's contextvars.

    SMTP sessions run here, and their log lines keep the queue and event_id
    bound by the consumer.
    """

    def submit(self, fn, /, *args, **kwargs):
        ctx = contextvars.copy_context()
        return super().submit(ctx.run, fn, *args, **kwargs)


def get_io_pool() -> TracedThreadPoolExecutor:
    """The shared pool for blocking I/O."""
    global _io_pool
    if _io_pool is None:
        from modules.notifier.core.config import get_app_config
        max_workers = get_app_config().concurrency.thread_pool.max_workers
        _io_pool = TracedThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="smtp")
        logger.info("Thread pool created", extra={"max_workers": max_workers})
    return _io_pool


def _limit_for(transport_name: str) -> asyncio.Semaphore:
    if transport_name not in _limits:
        from modules.notifier.core.config import get_app_config
        limits = get_app_config().concurrency.delivery_limits
        capacity = getattr(limits, transport_name, None) or limits.default
        _limits[transport_name] = (asyncio.Semaphore(capacity), capacity)
        logger.debug("Delivery limit created", extra={"transport": transport_name, "capacity": capacity})
    return _limits[transport_name][0]


@asynccontextmanager
async def delivery_slot(transport_name: str) -> AsyncIterator[None]:
    """Hold one of the transport's delivery slots for the duration of a send."""
    async with _limit_for(transport_name):
        yield


def pool_status() -> dict[str, Any]:
    """Current pool size and free delivery slots, for the detailed health check."""
    status: dict[str, Any] = {}
    if _io_pool is not None:
        status["thread_pool"] = {"max_workers": _io_pool._max_workers}
    if _limits:
        status["delivery_limits"] = {
            name: {"capacity": capacity, "available": semaphore._value}
            for name, (semaphore, capacity) in _limits.items()
        }
    return status


async def shutdown_pools() -> None:
    """Shut down the thread pool and forget delivery limits."""
    global _io_pool

    if _io_pool is not None:
        await asyncio.to_thread(_io_pool.shutdown, wait=True)
        logger.info("Thread pool shut down")
        _io_pool = None

    _limits.clear()
