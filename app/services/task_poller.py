"""
New-task polling.

While a workstation is open, a poller re-runs the "check new tasks" merge
step on a fixed interval. Tasks that were never seen before raise a short
notification that expires on its own. The poller is started when a
workstation opens and stopped when it closes (or on shutdown).
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import structlog

from app.core.metrics import NEW_TASK_NOTIFICATIONS
from app.services.backend_client import BackendError
from app.services.task_merger import TaskMerger

logger = structlog.get_logger()


@dataclass(frozen=True)
class TaskNotification:
    level: int
    audit_ids: tuple[int, ...]
    created_at: float
    expires_at: float

    @property
    def message(self) -> str:
        return f"您有{len(self.audit_ids)}个新的审核任务"


@dataclass
class NewTaskNotifier:
    """Tracks which task ids were already announced."""
    level: int
    ttl_seconds: float = 5.0
    clock: Callable[[], float] = time.time
    notified_ids: set[int] = field(default_factory=set)
    notifications: list[TaskNotification] = field(default_factory=list)

    def prime(self, audit_ids: Iterable[int]) -> None:
        """Mark tasks already on screen so they never trigger a notification."""
        self.notified_ids.update(audit_ids)

    def check(self, audit_ids: Iterable[int]) -> Optional[TaskNotification]:
        unseen = tuple(i for i in dict.fromkeys(audit_ids) if i not in self.notified_ids)
        if not unseen:
            return None
        self.notified_ids.update(unseen)
        now = self.clock()
        self._prune(now)
        note = TaskNotification(self.level, unseen, now, now + self.ttl_seconds)
        self.notifications.append(note)
        NEW_TASK_NOTIFICATIONS.labels(level=str(int(self.level))).inc()
        return note

    def retain(self, visible_ids: Iterable[int]) -> None:
        """Forget ids no longer on screen; a released task that comes back is announced again."""
        self.notified_ids.intersection_update(visible_ids)

    def active(self) -> list[TaskNotification]:
        """Notifications still on screen; expired ones are dismissed."""
        self._prune(self.clock())
        return list(self.notifications)

    def _prune(self, now: float) -> None:
        self.notifications = [n for n in self.notifications if n.expires_at > now]


class TaskPoller:

    def __init__(
        self,
        merger: TaskMerger,
        level: int,
        auditor_id: Optional[int] = None,
        interval_seconds: float = 30.0,
        notifier: Optional[NewTaskNotifier] = None,
    ):
        self.merger = merger
        self.level = level
        self.auditor_id = auditor_id
        self.interval_seconds = interval_seconds
        self.notifier = notifier or NewTaskNotifier(level)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> Optional[TaskNotification]:
        result = await self.merger.merge_tasks(self.level, self.auditor_id)
        note = self.notifier.check(result.new_ids)
        self.notifier.retain(t.audit_id for t in result.tasks)
        if note:
            logger.info("new_tasks_detected", level=self.level, audit_ids=list(note.audit_ids))
        return note

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.poll_once()
            except BackendError as e:
                logger.warning("task_poll_failed", level=self.level, error=e.message)
            except Exception as e:
                logger.error("task_poll_crashed", level=self.level, error=str(e), exc_info=True)

    def start(self, already_shown: Iterable[int] = ()) -> None:
        if self.running:
            return
        self.notifier.prime(already_shown)
        self._task = asyncio.create_task(self._run())
        logger.info("task_poller_started", level=self.level, auditor_id=self.auditor_id,
                    interval=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("task_poller_stopped", level=self.level, auditor_id=self.auditor_id)


class PollerRegistry:
    """One poller per open workstation, keyed by (level, auditor id)."""

    def __init__(self, merger: TaskMerger, interval_seconds: float, notification_ttl_seconds: float):
        self.merger = merger
        self.interval_seconds = interval_seconds
        self.notification_ttl_seconds = notification_ttl_seconds
        self._pollers: dict[tuple[int, Optional[int]], TaskPoller] = {}

    def get(self, level: int, auditor_id: Optional[int] = None) -> Optional[TaskPoller]:
        return self._pollers.get((level, auditor_id))

    def start(self, level: int, auditor_id: Optional[int] = None, already_shown: Iterable[int] = ()) -> TaskPoller:
        poller = self._pollers.get((level, auditor_id))
        if poller is None:
            poller = TaskPoller(
                self.merger,
                level,
                auditor_id,
                interval_seconds=self.interval_seconds,
                notifier=NewTaskNotifier(level, ttl_seconds=self.notification_ttl_seconds),
            )
            self._pollers[(level, auditor_id)] = poller
        poller.start(already_shown)
        return poller

    async def stop(self, level: int, auditor_id: Optional[int] = None) -> bool:
        poller = self._pollers.pop((level, auditor_id), None)
        if poller is None:
            return False
        await poller.stop()
        return True

    async def stop_all(self) -> None:
        for key in list(self._pollers):
            await self.stop(*key)
