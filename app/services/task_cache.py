"""
Advisory task cache.

Keeps the audit tasks an auditor has already pulled so a reload does not
lose them and the backend can be asked only for tasks we do not hold yet.
The cache is never authoritative: the backend decides what is assigned,
entries may be stale, and any read problem (missing key, corrupt JSON,
unreachable storage) reads as an empty cache.

Storage layout — one key, one JSON blob, partitioned by auditor level:

    auditTaskCache[:<auditor_id>] = {
        "0": {"tasks": [...], "assignedIds": [101, 102], "timestamp": 1700000000000},
        "1": {...},
    }

Writes are last-writer-wins.
"""
from __future__ import annotations

import json
import time
from typing import Callable, Iterable, Optional, Protocol

import structlog
from pydantic import ValidationError

from app.schemas.audit import AuditTask, CamelModel

logger = structlog.get_logger()


class CacheStorageError(Exception):
    """The underlying key-value store could not be read or written."""


class KeyValueBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryBackend:
    """Process-local storage. Default for development and tests."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisBackend:
    """Shared storage so every worker sees the same cache."""

    def __init__(self, url: str):
        import redis

        self._redis_error = redis.RedisError
        self._client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(key)
        except self._redis_error as e:
            raise CacheStorageError(str(e)) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value)
        except self._redis_error as e:
            raise CacheStorageError(str(e)) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except self._redis_error as e:
            raise CacheStorageError(str(e)) from e


def create_backend(kind: str, redis_url: str) -> KeyValueBackend:
    if kind == "redis":
        return RedisBackend(redis_url)
    if kind == "memory":
        return InMemoryBackend()
    raise ValueError(f"Unknown task cache backend: {kind}")


class CachedLevel(CamelModel):
    tasks: list[AuditTask] = []
    assigned_ids: list[int] = []
    timestamp: int = 0

    @property
    def task_ids(self) -> list[int]:
        return [t.audit_id for t in self.tasks]


class TaskCacheStore:
    """
    load / save / clear per auditor-level partition of a single storage key.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        storage_key: str = "auditTaskCache",
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.storage_key = storage_key
        self._clock = clock

    def for_auditor(self, auditor_id: Optional[int]) -> "TaskCacheStore":
        """Same backend, separate blob per auditor."""
        if auditor_id is None:
            return self
        return TaskCacheStore(self.backend, f"{self.storage_key}:{auditor_id}", self._clock)

    # ── Raw blob ──

    def _read_blob(self) -> dict:
        try:
            raw = self.backend.get(self.storage_key)
        except CacheStorageError as e:
            logger.warning("task_cache_read_failed", key=self.storage_key, error=str(e))
            return {}
        if not raw:
            return {}
        try:
            blob = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("task_cache_corrupt", key=self.storage_key, error=str(e))
            return {}
        if not isinstance(blob, dict):
            logger.warning("task_cache_corrupt", key=self.storage_key, error="blob is not an object")
            return {}
        return blob

    def _write_blob(self, blob: dict) -> None:
        try:
            self.backend.set(self.storage_key, json.dumps(blob, ensure_ascii=False))
        except CacheStorageError as e:
            logger.warning("task_cache_write_failed", key=self.storage_key, error=str(e))

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ── Partition operations ──

    def load(self, level: int) -> CachedLevel:
        entry = self._read_blob().get(str(int(level)))
        if entry is None:
            return CachedLevel()
        try:
            return CachedLevel.model_validate(entry)
        except ValidationError as e:
            logger.warning("task_cache_entry_invalid", key=self.storage_key, level=level, errors=e.error_count())
            return CachedLevel()

    def save(self, level: int, tasks: Iterable[AuditTask], assigned_ids: Optional[Iterable[int]] = None) -> CachedLevel:
        tasks = _dedupe(tasks)
        ids = [t.audit_id for t in tasks]
        assigned = list(dict.fromkeys(assigned_ids)) if assigned_ids is not None else ids
        entry = CachedLevel(tasks=tasks, assigned_ids=assigned, timestamp=self._now_ms())

        blob = self._read_blob()
        blob[str(int(level))] = entry.model_dump(mode="json", by_alias=True)
        self._write_blob(blob)
        return entry

    def append(self, level: int, new_tasks: Iterable[AuditTask]) -> CachedLevel:
        """Add tasks not already cached; existing snapshots are kept."""
        current = self.load(level)
        known = set(current.task_ids)
        added = [t for t in _dedupe(new_tasks) if t.audit_id not in known]
        assigned = current.assigned_ids + [t.audit_id for t in added if t.audit_id not in current.assigned_ids]
        return self.save(level, current.tasks + added, assigned)

    def remove(self, level: int, audit_id: int) -> bool:
        """Drop one task. Returns False (and writes nothing) if it was not cached."""
        current = self.load(level)
        if audit_id not in current.task_ids and audit_id not in current.assigned_ids:
            return False
        self.save(
            level,
            [t for t in current.tasks if t.audit_id != audit_id],
            [i for i in current.assigned_ids if i != audit_id],
        )
        return True

    def retain(self, level: int, keep: dict[int, AuditTask]) -> CachedLevel:
        """
        Keep only cached tasks the backend still reports, taking the
        backend's snapshot for each.
        """
        current = self.load(level)
        tasks = [keep[t.audit_id] for t in current.tasks if t.audit_id in keep]
        return self.save(level, tasks, [i for i in current.assigned_ids if i in keep])

    def clear(self, level: int) -> None:
        self.save(level, [], [])

    def cached_ids(self, level: int) -> list[int]:
        return self.load(level).task_ids


def _dedupe(tasks: Iterable[AuditTask]) -> list[AuditTask]:
    seen: dict[int, AuditTask] = {}
    for t in tasks:
        seen.setdefault(t.audit_id, t)
    return list(seen.values())
