from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine, Optional, Protocol

from ..core.logging_utils import log_event
from ..core.time_utils import utc_now
from ..notifications.fanout import NotificationFanout
from .changes import ChangeSet
from .feed import LaunchFeedError
from .models import LaunchRecord, LaunchStatus
from .snapshot import LaunchSnapshotStore

DEFAULT_POLL_INTERVAL_SECONDS = 55.0
DEFAULT_REFRESH_EVERY = 5
DEFAULT_STARTUP_DELAY_SECONDS = 60.0


class LaunchFeed(Protocol):
    async def fetch_upcoming(self) -> list[LaunchRecord]: ...


def minutes_until(record: LaunchRecord, now: datetime) -> int:
    """Whole minutes until ``record.net``, truncated toward zero."""
    return int((record.net - now).total_seconds() / 60)


class LaunchTracker:
    """Polls the launch feed and drives scrub, outcome and reminder notifications.

    The loop sweeps reminder buckets every iteration and refreshes the
    snapshot every ``refresh_every`` iterations. Notification work runs in
    spawned tasks so a slow or crashing delivery never stalls the loop.
    """

    def __init__(
        self,
        *,
        feed: LaunchFeed,
        snapshots: LaunchSnapshotStore,
        fanout: NotificationFanout,
        logger: logging.Logger,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        refresh_every: int = DEFAULT_REFRESH_EVERY,
        startup_delay_seconds: float = DEFAULT_STARTUP_DELAY_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        on_task_crash: Optional[Callable[[str, BaseException], Awaitable[None]]] = None,
    ) -> None:
        self._feed = feed
        self._snapshots = snapshots
        self._fanout = fanout
        self._logger = logger
        self._poll_interval_seconds = poll_interval_seconds
        self._refresh_every = max(refresh_every, 1)
        self._startup_delay_seconds = startup_delay_seconds
        self._clock = clock
        self._on_task_crash = on_task_crash
        self._tasks: set[asyncio.Task[Any]] = set()
        self._stop_event = asyncio.Event()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def poll_cycle(self) -> Optional[ChangeSet]:
        try:
            records = await self._feed.fetch_upcoming()
        except LaunchFeedError as exc:
            log_event(self._logger, logging.WARNING, "tracking.poll.failed", exc=exc)
            return None

        changes = await self._snapshots.compare_and_replace(records)
        self._fanout.reminded.retain(record.ll_id for record in records)
        log_event(
            self._logger,
            logging.INFO,
            "tracking.poll.completed",
            launches=len(records),
            scrubs=len(changes.scrubs),
            outcomes=len(changes.outcomes),
            snapshot_version=self._snapshots.version,
        )
        if changes:
            self.spawn("notify_changes", self._fanout.notify_changes(changes))
        return changes

    async def reminder_sweep(self, now: Optional[datetime] = None) -> int:
        """Spawn one reminder task per Go launch whose minute bucket changed."""
        current = now or self._clock()
        launches = await self._snapshots.upcoming(status=LaunchStatus.GO)
        spawned = 0
        for record in launches:
            minutes = minutes_until(record, current)
            if minutes < 0 or self._fanout.reminded.last_bucket(record.ll_id) == minutes:
                continue
            self.spawn(
                f"remind:{record.ll_id}:{minutes}",
                self._fanout.remind(record, minutes),
            )
            spawned += 1
        return spawned

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=f"launchwatch:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run_forever(self) -> None:
        if await self._sleep(self._startup_delay_seconds):
            return
        loop_count = 0
        while not self._stop_event.is_set():
            if loop_count % self._refresh_every == 0:
                self.spawn("poll_cycle", self.poll_cycle())
            try:
                await self.reminder_sweep()
            except Exception as exc:
                log_event(
                    self._logger, logging.ERROR, "tracking.sweep.failed", exc=exc
                )
            loop_count += 1
            if await self._sleep(self._poll_interval_seconds):
                return

    async def stop(self) -> None:
        self._stop_event.set()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first; returns True when stopped."""
        if seconds <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        log_event(
            self._logger,
            logging.ERROR,
            "tracking.task.crashed",
            task=task.get_name(),
            exc=exc,
        )
        if self._on_task_crash is not None:
            name = task.get_name()
            report = asyncio.create_task(
                self._on_task_crash(name, exc), name=f"{name}:crash_report"
            )
            self._tasks.add(report)
            report.add_done_callback(self._on_report_done)

    def _on_report_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(
                self._logger,
                logging.WARNING,
                "tracking.task.crash_report_failed",
                exc=exc,
            )
