from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

from .models import LaunchRecord

SCRUB_THRESHOLD = timedelta(minutes=5)


@dataclass(frozen=True)
class Scrub:
    previous: LaunchRecord
    current: LaunchRecord


@dataclass(frozen=True)
class ChangeSet:
    scrubs: list[Scrub] = field(default_factory=list)
    outcomes: list[LaunchRecord] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.scrubs or self.outcomes)


def is_scrub(
    previous: LaunchRecord,
    current: LaunchRecord,
    threshold: timedelta = SCRUB_THRESHOLD,
) -> bool:
    return current.net > previous.net + threshold


def is_outcome(previous: LaunchRecord, current: LaunchRecord) -> bool:
    return current.status.is_final and previous.status.is_pending


class ChangeDetector:
    """Classify records of a fresh poll against the previous snapshot.

    Records are matched by ``ll_id``. Scrub and outcome are independent
    checks, so one record can yield both in the same cycle. Records that
    disappear from the feed produce nothing.
    """

    def __init__(self, *, scrub_threshold: timedelta = SCRUB_THRESHOLD) -> None:
        self._scrub_threshold = scrub_threshold

    def detect(
        self,
        previous: Iterable[LaunchRecord],
        current: Iterable[LaunchRecord],
    ) -> ChangeSet:
        previous_by_id = {record.ll_id: record for record in previous}
        changes = ChangeSet()
        for record in current:
            old = previous_by_id.get(record.ll_id)
            if old is None:
                continue
            if is_scrub(old, record, self._scrub_threshold):
                changes.scrubs.append(Scrub(previous=old, current=record))
            if is_outcome(old, record):
                changes.outcomes.append(record)
        return changes
