"""Unit tests for the maintenance worker runtime hooks."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from modules.notifier.tasks import broker as broker_module


@pytest.fixture
def worker_runtime(monkeypatch):
    runtime = MagicMock()
    runtime.start = AsyncMock()
    runtime.stop = AsyncMock()
    runtime.mode = "async"
    monkeypatch.setattr(broker_module, "_runtime", runtime)
    return runtime


class TestWorkerRuntime:
    async def test_startup_starts_shared_runtime(self, worker_runtime):
        await broker_module.start_worker_runtime()

        worker_runtime.start.assert_awaited_once()
        assert broker_module.get_task_runtime() is worker_runtime

    async def test_shutdown_stops_and_forgets_runtime(self, worker_runtime):
        await broker_module.stop_worker_runtime()

        worker_runtime.stop.assert_awaited_once()
        assert broker_module._runtime is None

    async def test_shutdown_without_runtime_is_noop(self, monkeypatch):
        monkeypatch.setattr(broker_module, "_runtime", None)
        await broker_module.stop_worker_runtime()
        assert broker_module._runtime is None

    def test_runtime_built_once(self, monkeypatch):
        monkeypatch.setattr(broker_module, "_runtime", None)
        built = MagicMock()

        with patch("modules.notifier.runtime.build_runtime", return_value=built) as build:
            assert broker_module.get_task_runtime() is built
            assert broker_module.get_task_runtime() is built

        build.assert_called_once_with()


class TestGetBroker:
    def test_installs_worker_hooks_once(self, monkeypatch):
        from taskiq import TaskiqEvents

        monkeypatch.setattr(broker_module, "_broker", None)
        fake = MagicMock()

        with patch("modules.notifier.tasks.broker.create_broker", return_value=fake):
            assert broker_module.get_broker() is fake
            assert broker_module.get_broker() is fake

        fake.add_event_handler.assert_any_call(TaskiqEvents.WORKER_STARTUP, broker_module.start_worker_runtime)
        fake.add_event_handler.assert_any_call(TaskiqEvents.WORKER_SHUTDOWN, broker_module.stop_worker_runtime)
        assert fake.add_event_handler.call_count == 2
