"""
Tests for new-task notifications and the background poller.
"""
import asyncio
import contextlib

import httpx
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.backend_client import BackendClient
from app.services.task_merger import TaskMerger
from app.services.task_poller import NewTaskNotifier, PollerRegistry, TaskPoller
from conftest import make_task


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestNotifier:
    def test_first_sighting_notifies(self):
        notifier = NewTaskNotifier(0, clock=FakeClock())
        note = notifier.check([1, 2])
        assert note.audit_ids == (1, 2)
        assert note.message == "您有2个新的审核任务"

    def test_each_id_notified_once(self):
        notifier = NewTaskNotifier(0, clock=FakeClock())
        notifier.check([1, 2])
        assert notifier.check([1, 2]) is None
        assert notifier.check([2, 3]).audit_ids == (3,)

    def test_primed_ids_are_silent(self):
        notifier = NewTaskNotifier(1, clock=FakeClock())
        notifier.prime([10, 11])
        assert notifier.check([10, 11]) is None

    def test_notifications_expire(self):
        clock = FakeClock(1000.0)
        notifier = NewTaskNotifier(0, ttl_seconds=5.0, clock=clock)
        notifier.check([1])
        assert len(notifier.active()) == 1

        clock.now = 1004.9
        assert len(notifier.active()) == 1
        clock.now = 1005.0
        assert notifier.active() == []

    def test_check_drops_expired(self):
        clock = FakeClock(1000.0)
        notifier = NewTaskNotifier(0, ttl_seconds=5.0, clock=clock)
        notifier.check([1])
        clock.now = 1010.0
        notifier.check([2])
        assert [n.audit_ids for n in notifier.notifications] == [(2,)]

    def test_retain_forgets_ids_off_screen(self):
        notifier = NewTaskNotifier(0, clock=FakeClock())
        notifier.check([1, 2, 3])
        notifier.retain([2])
        assert notifier.notified_ids == {2}
        # released and handed out again
        assert notifier.check([1, 2]).audit_ids == (1,)


class TestTaskPoller:
    async def test_poll_once_reports_new_tasks(self, merger, fake_backend):
        fake_backend.new_tasks[0] = [make_task(1)]
        poller = TaskPoller(merger, 0)

        note = await poller.poll_once()
        assert note.audit_ids == (1,)

        fake_backend.assigned[0] = [make_task(1)]
        assert await poller.poll_once() is None

    async def test_background_loop(self, merger, fake_backend, cache_store):
        fake_backend.new_tasks[0] = [make_task(1)]
        poller = TaskPoller(merger, 0, interval_seconds=0.01)

        poller.start()
        assert poller.running
        for _ in range(100):
            if poller.notifier.notifications:
                break
            await asyncio.sleep(0.01)
        await poller.stop()

        assert not poller.running
        assert poller.notifier.notifications[0].audit_ids == (1,)
        assert cache_store.cached_ids(0) == [1]

    async def test_start_is_idempotent(self, merger):
        poller = TaskPoller(merger, 0, interval_seconds=60)
        poller.start()
        first = poller._task
        poller.start()
        assert poller._task is first
        await poller.stop()

    async def test_stop_without_start(self, merger):
        await TaskPoller(merger, 0).stop()


class TestPollerRegistry:
    async def test_one_poller_per_workstation(self, merger):
        registry = PollerRegistry(merger, interval_seconds=60, notification_ttl_seconds=5)
        a = registry.start(0, auditor_id=1)
        b = registry.start(0, auditor_id=1)
        c = registry.start(0, auditor_id=2)

        assert a is b
        assert a is not c
        assert registry.get(0, 1) is a

        await registry.stop_all()
        assert registry.get(0, 1) is None
        assert not a.running

    async def test_stop_unknown(self, merger):
        registry = PollerRegistry(merger, interval_seconds=60, notification_ttl_seconds=5)
        assert await registry.stop(2) is False

    async def test_start_primes_shown_ids(self, merger):
        registry = PollerRegistry(merger, interval_seconds=60, notification_ttl_seconds=5)
        poller = registry.start(1, already_shown=[7, 8])
        assert poller.notifier.check([7, 8]) is None
        await registry.stop_all()


class TestPollerResilience:
    async def _run_ticks(self, poller: TaskPoller, seen, ticks: int = 3) -> None:
        poller.start()
        for _ in range(200):
            if seen() >= ticks:
                break
            await asyncio.sleep(0.01)

    async def test_keeps_polling_when_backend_unreachable(self, cache_store):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            raise httpx.ConnectError("connection refused", request=request)

        client = BackendClient("http://backend.test", transport=httpx.MockTransport(handler))
        poller = TaskPoller(TaskMerger(client, cache_store), 0, interval_seconds=0.01)

        await self._run_ticks(poller, lambda: len(calls))
        assert poller.running
        await poller.stop()

        assert len(calls) >= 3
        assert poller.notifier.notifications == []

    async def test_unexpected_error_does_not_end_loop(self):
        ticks = []

        class BrokenMerger:
            async def merge_tasks(self, level, auditor_id=None):
                ticks.append(level)
                raise RuntimeError("cache exploded")

        poller = TaskPoller(BrokenMerger(), 1, interval_seconds=0.01)

        await self._run_ticks(poller, lambda: len(ticks))
        assert poller.running
        await poller.stop()

        assert len(ticks) >= 3
        assert not poller.running


class TestShutdown:
    def test_backend_closed_when_pollers_fail_to_stop(self, settings, transport, monkeypatch):
        async def stuck(self):
            raise RuntimeError("poller stuck")

        monkeypatch.setattr(PollerRegistry, "stop_all", stuck)
        app = create_app(settings, transport=transport)

        # the failure itself may or may not surface through the test client
        with contextlib.suppress(Exception):
            with TestClient(app):
                pass

        assert app.state.backend._client.is_closed
