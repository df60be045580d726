"""
Unit tests for the advisory task cache.
"""
import json
from typing import Optional

from app.schemas.audit import AuditTask
from app.services.task_cache import CacheStorageError, InMemoryBackend, TaskCacheStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenBackend:
    def get(self, key: str) -> Optional[str]:
        raise CacheStorageError("storage offline")

    def set(self, key: str, value: str) -> None:
        raise CacheStorageError("storage offline")

    def delete(self, key: str) -> None:
        raise CacheStorageError("storage offline")


def _tasks(*ids: int) -> list[AuditTask]:
    return [AuditTask(audit_id=i, customer_name=f"客户{i}") for i in ids]


def _store(clock: Optional[FakeClock] = None) -> TaskCacheStore:
    return TaskCacheStore(InMemoryBackend(), clock=clock or FakeClock())


class TestLoad:
    def test_missing_key_is_empty(self):
        entry = _store().load(0)
        assert entry.tasks == []
        assert entry.assigned_ids == []

    def test_corrupt_json_is_empty(self):
        store = _store()
        store.backend.set(store.storage_key, "{not json")
        assert store.load(0).tasks == []

    def test_wrong_shape_is_empty(self):
        store = _store()
        store.backend.set(store.storage_key, json.dumps([1, 2, 3]))
        assert store.load(0).tasks == []
        store.backend.set(store.storage_key, json.dumps({"0": {"tasks": "nope"}}))
        assert store.load(0).tasks == []

    def test_storage_failure_is_empty(self):
        store = TaskCacheStore(BrokenBackend())
        assert store.load(1).tasks == []
        # writes are best-effort too
        store.save(1, _tasks(1))


class TestWrite:
    def test_save_and_layout(self):
        clock = FakeClock(1_700_000_000.5)
        store = _store(clock)
        store.save(0, _tasks(101, 102))

        blob = json.loads(store.backend.get("auditTaskCache"))
        assert blob["0"]["assignedIds"] == [101, 102]
        assert blob["0"]["timestamp"] == 1_700_000_000_500
        assert blob["0"]["tasks"][0]["auditId"] == 101

    def test_levels_are_separate(self):
        store = _store()
        store.save(0, _tasks(1))
        store.save(1, _tasks(2))
        assert store.cached_ids(0) == [1]
        assert store.cached_ids(1) == [2]

    def test_append_dedupes(self):
        store = _store()
        store.save(0, _tasks(101, 102))
        entry = store.append(0, _tasks(102, 103, 103))
        assert entry.task_ids == [101, 102, 103]
        assert entry.assigned_ids == [101, 102, 103]

    def test_append_refreshes_timestamp(self):
        clock = FakeClock(100.0)
        store = _store(clock)
        store.save(0, _tasks(1))
        clock.now = 200.0
        assert store.append(0, _tasks(2)).timestamp == 200_000

    def test_per_auditor_partition(self):
        store = _store()
        store.for_auditor(7).save(0, _tasks(1))
        assert store.cached_ids(0) == []
        assert store.for_auditor(7).cached_ids(0) == [1]
        assert store.for_auditor(None) is store


class TestRemove:
    def test_remove_drops_task_and_id(self):
        store = _store()
        store.save(0, _tasks(101, 102, 103))
        assert store.remove(0, 102) is True
        entry = store.load(0)
        assert entry.task_ids == [101, 103]
        assert entry.assigned_ids == [101, 103]

    def test_remove_unknown_is_noop(self):
        clock = FakeClock(100.0)
        store = _store(clock)
        store.save(0, _tasks(101))
        before = store.backend.get(store.storage_key)
        clock.now = 500.0

        assert store.remove(0, 999) is False
        assert store.backend.get(store.storage_key) == before

    def test_remove_from_empty_cache(self):
        assert _store().remove(3, 1) is False


class TestClearAndRetain:
    def test_clear_only_that_level(self):
        store = _store()
        store.save(0, _tasks(1, 2))
        store.save(1, _tasks(3))
        store.clear(0)
        assert store.load(0).tasks == []
        assert store.load(0).assigned_ids == []
        assert store.cached_ids(1) == [3]

    def test_retain_uses_backend_snapshot(self):
        store = _store()
        store.save(0, _tasks(1, 2, 3))
        updated = AuditTask(audit_id=3, customer_name="新名字")
        entry = store.retain(0, {1: _tasks(1)[0], 3: updated})
        assert entry.task_ids == [1, 3]
        assert store.load(0).tasks[1].customer_name == "新名字"
