from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from launchwatch.launches.changes import ChangeSet
from launchwatch.launches.feed import LaunchFeedTransientError
from launchwatch.launches.models import LaunchRecord, LaunchStatus
from launchwatch.launches.snapshot import LaunchSnapshotStore
from launchwatch.launches.tracking import LaunchTracker, minutes_until
from launchwatch.notifications.fanout import ReminderDeduper

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(
    ll_id: str,
    *,
    net: datetime,
    status: LaunchStatus = LaunchStatus.GO,
) -> LaunchRecord:
    return LaunchRecord(
        ll_id=ll_id,
        launch_name=f"Rocket | {ll_id}",
        status=status,
        net=net,
        payload=ll_id,
        vehicle="Rocket",
        location="Pad",
        lsp="SpaceX",
    )


class _FakeFeed:
    def __init__(self, batches: list[Any]) -> None:
        self._batches = list(batches)
        self.calls = 0

    async def fetch_upcoming(self) -> list[LaunchRecord]:
        self.calls += 1
        batch = self._batches.pop(0) if self._batches else []
        if isinstance(batch, Exception):
            raise batch
        return list(batch)


class _FakeFanout:
    def __init__(self, *, fail_remind: bool = False) -> None:
        self.reminded = ReminderDeduper()
        self.changes: list[ChangeSet] = []
        self.reminders: list[tuple[str, int]] = []
        self._fail_remind = fail_remind

    async def notify_changes(self, changes: ChangeSet) -> int:
        self.changes.append(changes)
        return 0

    async def remind(self, record: LaunchRecord, minutes: int) -> int:
        if self._fail_remind:
            raise RuntimeError("delivery exploded")
        if not self.reminded.should_notify(record.ll_id, minutes):
            return 0
        self.reminders.append((record.ll_id, minutes))
        return 1


def _tracker(
    feed: _FakeFeed,
    fanout: _FakeFanout,
    *,
    snapshots: Optional[LaunchSnapshotStore] = None,
    on_task_crash: Any = None,
    **kwargs: Any,
) -> LaunchTracker:
    return LaunchTracker(
        feed=feed,
        snapshots=snapshots or LaunchSnapshotStore(),
        fanout=fanout,  # type: ignore[arg-type]
        logger=logging.getLogger("test.tracking"),
        clock=lambda: NOW,
        on_task_crash=on_task_crash,
        **kwargs,
    )


def test_minutes_until_truncates_toward_zero() -> None:
    record = _record("a", net=NOW + timedelta(minutes=15, seconds=59))
    assert minutes_until(record, NOW) == 15
    late = _record("b", net=NOW - timedelta(seconds=30))
    assert minutes_until(late, NOW) == 0


@pytest.mark.anyio
async def test_poll_cycle_notifies_only_when_something_changed() -> None:
    feed = _FakeFeed(
        [
            [_record("a", net=NOW + timedelta(hours=1))],
            [_record("a", net=NOW + timedelta(hours=1))],
            [_record("a", net=NOW + timedelta(hours=3))],
        ]
    )
    fanout = _FakeFanout()
    tracker = _tracker(feed, fanout)

    assert not await tracker.poll_cycle()
    assert not await tracker.poll_cycle()
    changes = await tracker.poll_cycle()
    await tracker.wait_idle()

    assert changes is not None and len(changes.scrubs) == 1
    assert len(fanout.changes) == 1


@pytest.mark.anyio
async def test_poll_cycle_keeps_snapshot_when_feed_fails() -> None:
    snapshots = LaunchSnapshotStore()
    feed = _FakeFeed(
        [[_record("a", net=NOW)], LaunchFeedTransientError("feed down")]
    )
    tracker = _tracker(feed, _FakeFanout(), snapshots=snapshots)

    await tracker.poll_cycle()
    assert await tracker.poll_cycle() is None
    assert [record.ll_id for record in await snapshots.current()] == ["a"]
    assert snapshots.version == 1


@pytest.mark.anyio
async def test_poll_cycle_prunes_reminder_memory_for_vanished_launches() -> None:
    feed = _FakeFeed([[_record("b", net=NOW)]])
    fanout = _FakeFanout()
    fanout.reminded.should_notify("a", 15)
    fanout.reminded.should_notify("b", 15)
    tracker = _tracker(feed, fanout)

    await tracker.poll_cycle()

    assert fanout.reminded.last_bucket("a") is None
    assert fanout.reminded.last_bucket("b") == 15


@pytest.mark.anyio
async def test_reminder_sweep_fires_each_bucket_once() -> None:
    snapshots = LaunchSnapshotStore()
    await snapshots.compare_and_replace(
        [
            _record("go", net=NOW + timedelta(minutes=15, seconds=30)),
            _record("tbd", net=NOW + timedelta(minutes=15), status=LaunchStatus.TBD),
            _record("past", net=NOW - timedelta(minutes=2)),
        ]
    )
    fanout = _FakeFanout()
    tracker = _tracker(_FakeFeed([]), fanout, snapshots=snapshots)

    assert await tracker.reminder_sweep() == 1
    await tracker.wait_idle()
    assert await tracker.reminder_sweep() == 0
    later = NOW + timedelta(minutes=1)
    assert await tracker.reminder_sweep(later) == 1
    await tracker.wait_idle()

    assert fanout.reminders == [("go", 15), ("go", 14)]


@pytest.mark.anyio
async def test_crashing_tasks_are_reported_and_do_not_stop_the_tracker() -> None:
    snapshots = LaunchSnapshotStore()
    await snapshots.compare_and_replace([_record("go", net=NOW + timedelta(minutes=5))])
    reported: list[tuple[str, str]] = []

    async def on_crash(name: str, exc: BaseException) -> None:
        reported.append((name, str(exc)))

    tracker = _tracker(
        _FakeFeed([]),
        _FakeFanout(fail_remind=True),
        snapshots=snapshots,
        on_task_crash=on_crash,
    )

    await tracker.reminder_sweep()
    await tracker.wait_idle()

    assert reported == [("launchwatch:remind:go:5", "delivery exploded")]
    assert tracker.pending_tasks == 0


@pytest.mark.anyio
async def test_crash_reports_are_tracked_until_they_finish() -> None:
    started = asyncio.Event()
    release = asyncio.Event()
    reported: list[str] = []

    async def on_crash(name: str, exc: BaseException) -> None:
        started.set()
        await release.wait()
        reported.append(name)

    async def explode() -> None:
        raise RuntimeError("boom")

    tracker = _tracker(_FakeFeed([]), _FakeFanout(), on_task_crash=on_crash)
    tracker.spawn("explode", explode())
    await asyncio.wait_for(started.wait(), timeout=1.0)

    assert tracker.pending_tasks == 1
    release.set()
    await tracker.wait_idle()

    assert reported == ["launchwatch:explode"]
    assert tracker.pending_tasks == 0


@pytest.mark.anyio
async def test_run_forever_polls_then_stops() -> None:
    feed = _FakeFeed([[_record("a", net=NOW + timedelta(days=1))]])
    tracker = _tracker(
        feed,
        _FakeFanout(),
        poll_interval_seconds=0.01,
        refresh_every=1000,
        startup_delay_seconds=0,
    )

    task = asyncio.create_task(tracker.run_forever())
    for _ in range(50):
        if feed.calls:
            break
        await asyncio.sleep(0.01)
    await tracker.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert feed.calls == 1
