from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..core.logging_utils import log_event
from ..core.ports import MessageSender
from ..launches.agencies import LAUNCH_AGENCIES
from ..launches.changes import ChangeSet
from ..launches.models import LaunchRecord
from .filtering import passes_filters
from .messages import build_outcome_embed, build_reminder_embed, build_scrub_embed
from .settings import Reminder, SubscriberSettings, ToggleSetting
from .store import SettingsRepository


@dataclass(frozen=True)
class Delivery:
    target: str
    channel_id: Optional[str]
    user_id: Optional[str]
    payload: dict[str, Any]


class ReminderDeduper:
    """Remembers the last minute bucket announced per launch id."""

    def __init__(self) -> None:
        self._last_bucket: dict[str, int] = {}

    def should_notify(self, ll_id: str, minutes: int) -> bool:
        if self._last_bucket.get(ll_id) == minutes:
            return False
        self._last_bucket[ll_id] = minutes
        return True

    def last_bucket(self, ll_id: str) -> Optional[int]:
        return self._last_bucket.get(ll_id)

    def retain(self, ll_ids: Iterable[str]) -> None:
        keep = set(ll_ids)
        for ll_id in list(self._last_bucket):
            if ll_id not in keep:
                del self._last_bucket[ll_id]


def _channel_delivery(
    channel_id: str, embed: dict[str, Any], mentions: str = ""
) -> Delivery:
    payload: dict[str, Any] = {"embeds": [embed]}
    if mentions:
        payload["content"] = mentions
    return Delivery(
        target=f"channel:{channel_id}",
        channel_id=channel_id,
        user_id=None,
        payload=payload,
    )


def _user_delivery(user_id: str, embed: dict[str, Any]) -> Delivery:
    return Delivery(
        target=f"user:{user_id}",
        channel_id=None,
        user_id=user_id,
        payload={"embeds": [embed]},
    )


class NotificationFanout:
    def __init__(
        self,
        *,
        settings: SettingsRepository,
        sender: MessageSender,
        logger: Optional[logging.Logger] = None,
        agencies: dict[str, str] = LAUNCH_AGENCIES,
    ) -> None:
        self._settings = settings
        self._sender = sender
        self._logger = logger or logging.getLogger(__name__)
        self._agencies = agencies
        self.reminded = ReminderDeduper()

    async def notify_changes(self, changes: ChangeSet) -> int:
        delivered = 0
        for scrub in changes.scrubs:
            delivered += await self.notify_scrub(scrub.previous, scrub.current)
        for outcome in changes.outcomes:
            delivered += await self.notify_outcome(outcome)
        return delivered

    async def notify_scrub(self, previous: LaunchRecord, current: LaunchRecord) -> int:
        embed = build_scrub_embed(previous, current)
        return await self._notify_toggled(ToggleSetting.SCRUB, current, embed)

    async def notify_outcome(self, record: LaunchRecord) -> int:
        embed = build_outcome_embed(record)
        return await self._notify_toggled(ToggleSetting.OUTCOME, record, embed)

    async def remind(self, record: LaunchRecord, minutes: int) -> int:
        """Send the reminder bucket ``minutes`` for ``record`` at most once."""
        if not self.reminded.should_notify(record.ll_id, minutes):
            return 0
        reminder = await self._settings.reminder_for_minutes(minutes)
        if reminder is None:
            return 0
        return await self.send_reminder(record, reminder)

    async def send_reminder(self, record: LaunchRecord, reminder: Reminder) -> int:
        embed = build_reminder_embed(record, reminder.duration)
        deliveries: list[Delivery] = []
        for entry in reminder.channels:
            settings = await self._settings.get_guild_settings(entry.guild_id)
            if not self._passes(settings, record):
                continue
            deliveries.append(
                _channel_delivery(entry.channel_id, embed, settings.mention_text())
            )
        for user_id in reminder.users:
            settings = await self._settings.get_user_settings(user_id)
            if not self._passes(settings, record):
                continue
            deliveries.append(_user_delivery(user_id, embed))
        return await self._deliver_all(deliveries, kind="reminder", record=record)

    async def _notify_toggled(
        self, setting: ToggleSetting, record: LaunchRecord, embed: dict[str, Any]
    ) -> int:
        users, guilds = await self._settings.list_toggled(setting)
        deliveries: list[Delivery] = []
        for settings in users:
            if self._passes(settings, record):
                deliveries.append(_user_delivery(settings.key, embed))
        for settings in guilds:
            if not settings.notifications_channel:
                continue
            if not self._passes(settings, record):
                continue
            mentions = settings.mention_text() if settings.mention_others else ""
            deliveries.append(
                _channel_delivery(settings.notifications_channel, embed, mentions)
            )
        return await self._deliver_all(deliveries, kind=setting.value, record=record)

    def _passes(self, settings: SubscriberSettings, record: LaunchRecord) -> bool:
        return passes_filters(settings, record, self._agencies)

    async def _deliver_all(
        self, deliveries: list[Delivery], *, kind: str, record: LaunchRecord
    ) -> int:
        if not deliveries:
            return 0
        results = await asyncio.gather(
            *(
                self._deliver(delivery, kind=kind, record=record)
                for delivery in deliveries
            )
        )
        delivered = sum(1 for ok in results if ok)
        log_event(
            self._logger,
            logging.INFO,
            "notifications.fanout.completed",
            kind=kind,
            launch_id=record.ll_id,
            attempted=len(deliveries),
            delivered=delivered,
        )
        return delivered

    async def _deliver(
        self, delivery: Delivery, *, kind: str, record: LaunchRecord
    ) -> bool:
        try:
            if delivery.user_id is not None:
                await self._sender.send_direct_message(
                    delivery.user_id, delivery.payload
                )
            elif delivery.channel_id is not None:
                await self._sender.send_channel_message(
                    delivery.channel_id, delivery.payload
                )
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "notifications.delivery.failed",
                kind=kind,
                launch_id=record.ll_id,
                target=delivery.target,
                exc=exc,
            )
            return False
        return True
