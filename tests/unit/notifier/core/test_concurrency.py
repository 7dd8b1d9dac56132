"""Unit tests for the I/O pool and per-transport delivery limits."""

import asyncio
import contextvars

import pytest

from modules.notifier.core import concurrency
from modules.notifier.core.concurrency import (
    TracedThreadPoolExecutor,
    delivery_slot,
    get_io_pool,
    pool_status,
    shutdown_pools,
)

request_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_var", default="unset")


@pytest.fixture(autouse=True)
async def _reset_pools():
    await shutdown_pools()
    yield
    await shutdown_pools()


class TestTracedThreadPoolExecutor:
    def test_context_reaches_worker_thread(self):
        request_var.set("evt-1")
        with TracedThreadPoolExecutor(max_workers=1) as pool:
            assert pool.submit(request_var.get).result() == "evt-1"


class TestIoPool:
    async def test_created_once_from_config(self, app_config):
        pool = get_io_pool()

        assert get_io_pool() is pool
        assert pool_status()["thread_pool"]["max_workers"] == app_config.concurrency.thread_pool.max_workers

    async def test_shutdown_releases_pool(self):
        get_io_pool()

        await shutdown_pools()

        assert concurrency._io_pool is None
        assert pool_status() == {}


class TestDeliverySlot:
    async def test_capacity_from_config(self, app_config):
        async with delivery_slot("smtp"):
            status = pool_status()["delivery_limits"]["smtp"]

        assert status["capacity"] == app_config.concurrency.delivery_limits.smtp
        assert status["available"] == status["capacity"] - 1
        assert pool_status()["delivery_limits"]["smtp"]["available"] == status["capacity"]

    async def test_unknown_transport_uses_default(self, app_config):
        async with delivery_slot("recording"):
            pass

        assert pool_status()["delivery_limits"]["recording"]["capacity"] == (
            app_config.concurrency.delivery_limits.default
        )

    async def test_limits_concurrent_sends(self, app_config):
        capacity = app_config.concurrency.delivery_limits.smtp
        in_flight = 0
        peak = 0

        async def send():
            nonlocal in_flight, peak
            async with delivery_slot("smtp"):
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1

        await asyncio.gather(*(send() for _ in range(capacity * 3)))

        assert peak == capacity
