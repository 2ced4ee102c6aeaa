from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from ..core.time_utils import parse_iso_datetime

COLOR_SUCCESS = 0x00FF00
COLOR_PARTIAL_FAILURE = 0xFF8C00
COLOR_FAILURE = 0xFF0000


class LaunchStatus(enum.IntEnum):
    GO = 1
    TBD = 2
    SUCCESS = 3
    FAILURE = 4
    HOLD = 5
    IN_FLIGHT = 6
    PARTIAL_FAILURE = 7

    @classmethod
    def from_feed_id(cls, value: Any) -> "LaunchStatus":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.TBD

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def emoji(self) -> str:
        return _STATUS_EMOJI[self]

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATUSES

    @property
    def is_pending(self) -> bool:
        return self in PENDING_STATUSES


_STATUS_LABELS = {
    LaunchStatus.GO: "Go",
    LaunchStatus.TBD: "TBD",
    LaunchStatus.SUCCESS: "Success",
    LaunchStatus.FAILURE: "Failure",
    LaunchStatus.HOLD: "Hold",
    LaunchStatus.IN_FLIGHT: "In Flight",
    LaunchStatus.PARTIAL_FAILURE: "Partial Failure",
}

_STATUS_EMOJI = {
    LaunchStatus.GO: "\U0001f7e2",
    LaunchStatus.TBD: "\U0001f7e0",
    LaunchStatus.SUCCESS: "✅",
    LaunchStatus.FAILURE: "❌",
    LaunchStatus.HOLD: "⏸️",
    LaunchStatus.IN_FLIGHT: "\U0001f680",
    LaunchStatus.PARTIAL_FAILURE: "⚠️",
}

FINAL_STATUSES = frozenset(
    {LaunchStatus.SUCCESS, LaunchStatus.FAILURE, LaunchStatus.PARTIAL_FAILURE}
)
PENDING_STATUSES = frozenset(
    {LaunchStatus.GO, LaunchStatus.TBD, LaunchStatus.IN_FLIGHT, LaunchStatus.HOLD}
)


def status_color(status: LaunchStatus) -> int:
    if status is LaunchStatus.SUCCESS:
        return COLOR_SUCCESS
    if status is LaunchStatus.PARTIAL_FAILURE:
        return COLOR_PARTIAL_FAILURE
    return COLOR_FAILURE


class LaunchParseError(ValueError):
    """Raised when a raw feed record cannot be turned into a LaunchRecord."""


@dataclass(frozen=True)
class LaunchRecord:
    """One tracked launch.

    ``ll_id`` is the identity across polls. ``ordinal`` is only the position
    in the current snapshot's time-sorted order and is reassigned every poll.
    """

    ll_id: str
    launch_name: str
    status: LaunchStatus
    net: datetime
    payload: str
    vehicle: str
    location: str
    lsp: str
    launch_window: timedelta = timedelta(0)
    vid_urls: tuple[str, ...] = ()
    rocket_img: Optional[str] = None
    mission_type: Optional[str] = None
    mission_description: Optional[str] = None
    ordinal: int = 0

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "LaunchRecord":
        if not isinstance(raw, dict):
            raise LaunchParseError("launch record must be an object")
        ll_id = raw.get("id")
        if not isinstance(ll_id, str) or not ll_id:
            raise LaunchParseError("launch record is missing its id")
        net = parse_iso_datetime(raw.get("net"))
        if net is None:
            raise LaunchParseError(f"launch {ll_id} has no valid net")

        name = _string(raw.get("name")) or "Unknown launch"
        status_raw = raw.get("status")
        status = LaunchStatus.from_feed_id(
            status_raw.get("id") if isinstance(status_raw, dict) else status_raw
        )

        mission = raw.get("mission") if isinstance(raw.get("mission"), dict) else {}
        payload = _string(mission.get("name"))
        if not payload:
            payload = name.split(" | ", 1)[1] if " | " in name else name

        rocket = raw.get("rocket") if isinstance(raw.get("rocket"), dict) else {}
        configuration = rocket.get("configuration")
        vehicle = ""
        if isinstance(configuration, dict):
            vehicle = _string(configuration.get("full_name")) or _string(
                configuration.get("name")
            )
        if not vehicle:
            vehicle = name.split(" | ", 1)[0]

        pad = raw.get("pad") if isinstance(raw.get("pad"), dict) else {}
        pad_location = pad.get("location")
        location = (
            _string(pad_location.get("name")) if isinstance(pad_location, dict) else ""
        )

        provider = raw.get("launch_service_provider")
        lsp = _string(provider.get("name")) if isinstance(provider, dict) else ""

        window_start = parse_iso_datetime(raw.get("window_start"))
        window_end = parse_iso_datetime(raw.get("window_end"))
        window = (
            window_end - window_start
            if window_start is not None and window_end is not None
            else timedelta(0)
        )

        return cls(
            ll_id=ll_id,
            launch_name=name,
            status=status,
            net=net,
            payload=payload,
            vehicle=vehicle,
            location=location or "Unknown location",
            lsp=lsp or "Unknown provider",
            launch_window=max(window, timedelta(0)),
            vid_urls=tuple(_video_urls(raw.get("vidURLs"))),
            rocket_img=_string(raw.get("image")) or None,
            mission_type=_string(mission.get("type")) or None,
            mission_description=_string(mission.get("description")) or None,
        )

    def with_ordinal(self, ordinal: int) -> "LaunchRecord":
        return replace(self, ordinal=ordinal)

    def live_url(self) -> Optional[str]:
        for url in self.vid_urls:
            if "youtube.com" in url or "youtu.be" in url:
                return url
        return self.vid_urls[0] if self.vid_urls else None


def order_by_schedule(records: Iterable[LaunchRecord]) -> tuple[LaunchRecord, ...]:
    ordered = sorted(records, key=lambda record: record.net)
    return tuple(record.with_ordinal(index) for index, record in enumerate(ordered))


def _string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _video_urls(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    urls: list[str] = []
    for item in value:
        url = item.get("url") if isinstance(item, dict) else item
        if isinstance(url, str) and url.strip():
            urls.append(url.strip())
    return urls
