from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from .changes import ChangeDetector, ChangeSet
from .models import LaunchRecord, LaunchStatus, order_by_schedule


class LaunchSnapshotStore:
    """Latest known launch schedule shared by the poller and commands.

    ``compare_and_replace`` serializes poll cycles: it diffs the incoming
    records against the current snapshot and only then swaps. Readers take
    the swap lock, never the cycle lock, so a slow cycle does not stall them.
    """

    def __init__(self, *, detector: Optional[ChangeDetector] = None) -> None:
        self._detector = detector or ChangeDetector()
        self._records: tuple[LaunchRecord, ...] = ()
        self._version = 0
        self._cycle_lock = asyncio.Lock()
        self._swap_lock = asyncio.Lock()

    @property
    def version(self) -> int:
        return self._version

    async def current(self) -> tuple[LaunchRecord, ...]:
        async with self._swap_lock:
            return self._records

    async def upcoming(
        self, *, status: Optional[LaunchStatus] = None
    ) -> list[LaunchRecord]:
        records = await self.current()
        if status is None:
            return list(records)
        return [record for record in records if record.status is status]

    async def compare_and_replace(self, records: Iterable[LaunchRecord]) -> ChangeSet:
        ordered = order_by_schedule(records)
        async with self._cycle_lock:
            previous = self._records
            changes = self._detector.detect(previous, ordered)
            async with self._swap_lock:
                self._records = ordered
                self._version += 1
        return changes
