"""
Task cache merger.

Combines the tasks an auditor already holds in the advisory cache with
whatever the backend hands out next:

  1. read the cached tasks for the level
  2. ask the backend for new tasks, excluding cached ids
  3. append genuinely new ones (deduplicated) and persist with a fresh timestamp
  4. return cached + new as the visible list
  5. no new tasks but a non-empty cache → optionally re-fetch the tasks
     assigned to this auditor, keep the backend's list (drop cached entries
     it no longer reports, add ones it reports that are not cached)

Revalidation needs an auditor id. Without one, `POST /api/auditor/tasks`
hands out (and locks) unassigned pool tasks instead of listing the
auditor's own, so its reply says nothing about what is still assigned.

The backend wins every disagreement. Nothing here guarantees the cache
matches the backend between merges.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from app.core.metrics import TASK_MERGES
from app.schemas.audit import AuditTask
from app.services.backend_client import BackendClient, BackendError
from app.services.task_cache import TaskCacheStore

logger = structlog.get_logger()


@dataclass
class MergeResult:
    level: int
    tasks: list[AuditTask]
    new_ids: list[int] = field(default_factory=list)
    dropped_ids: list[int] = field(default_factory=list)
    timestamp: int = 0

    @property
    def message(self) -> str:
        if self.new_ids:
            return f"获取到{len(self.new_ids)}个新任务"
        return "暂无新任务"


class TaskMerger:

    def __init__(
        self,
        backend: BackendClient,
        cache: TaskCacheStore,
        revalidate_on_idle: bool = False,
    ):
        self.backend = backend
        self.cache = cache
        self.revalidate_on_idle = revalidate_on_idle

    def _store(self, auditor_id: Optional[int]) -> TaskCacheStore:
        return self.cache.for_auditor(auditor_id)

    async def merge_tasks(self, level: int, auditor_id: Optional[int] = None) -> MergeResult:
        store = self._store(auditor_id)
        cached = store.load(level)
        cached_ids = set(cached.task_ids)

        response = await self.backend.get_new_tasks(level, exclude_ids=cached.task_ids)
        fresh = [t for t in response.tasks if t.audit_id not in cached_ids]

        dropped: list[int] = []
        if fresh:
            entry = store.append(level, fresh)
        elif cached.tasks and self.revalidate_on_idle and auditor_id is not None:
            entry, dropped = await self._revalidate(store, level, auditor_id)
        else:
            entry = cached

        new_ids = [t.audit_id for t in entry.tasks if t.audit_id not in cached_ids]
        TASK_MERGES.labels(level=str(int(level))).inc()
        logger.info(
            "task_cache_merged",
            level=level,
            auditor_id=auditor_id,
            cached=len(cached_ids),
            new=len(new_ids),
            dropped=len(dropped),
        )
        return MergeResult(
            level=level,
            tasks=entry.tasks,
            new_ids=new_ids,
            dropped_ids=dropped,
            timestamp=entry.timestamp,
        )

    async def _revalidate(self, store: TaskCacheStore, level: int, auditor_id: Optional[int]):
        cached = store.load(level)
        try:
            assigned = await self.backend.get_tasks(level, auditor_id)
        except BackendError as e:
            # Keep showing the cache; the next merge tries again.
            logger.warning("task_cache_revalidate_failed", level=level, error=e.message)
            return cached, []

        still_assigned = {t.audit_id: t for t in assigned.tasks}
        dropped = [i for i in cached.task_ids if i not in still_assigned]
        known = set(cached.task_ids)
        added = [t for t in assigned.tasks if t.audit_id not in known]
        if not dropped and not added and all(still_assigned[t.audit_id] == t for t in cached.tasks):
            return cached, []
        if dropped:
            logger.info("task_cache_pruned", level=level, dropped=dropped)
        entry = store.retain(level, still_assigned)
        if added:
            entry = store.append(level, added)
        return entry, dropped

    def complete_task(self, level: int, audit_id: int, auditor_id: Optional[int] = None) -> bool:
        """A final decision was submitted: forget the task locally."""
        return self._store(auditor_id).remove(level, audit_id)

    async def release_task(self, level: int, audit_id: int, auditor_id: Optional[int] = None) -> bool:
        """
        Hand the task back to the pool. The local copy is dropped even when
        the backend call fails; the backend's lock will expire on its own.
        """
        try:
            await self.backend.release_task(audit_id)
        except BackendError as e:
            logger.warning("task_release_failed", audit_id=audit_id, error=e.message)
        return self._store(auditor_id).remove(level, audit_id)

    def clear(self, level: int, auditor_id: Optional[int] = None) -> None:
        self._store(auditor_id).clear(level)
        logger.info("task_cache_cleared", level=level, auditor_id=auditor_id)
