from __future__ import annotations

from datetime import timedelta
from typing import Optional

from ..storage.documents import DocumentStore
from .settings import (
    GUILD_SETTINGS,
    REMINDERS,
    USER_SETTINGS,
    FilterKind,
    Reminder,
    SubscriberId,
    SubscriberSettings,
    ToggleSetting,
)


def duration_to_minutes(duration: timedelta) -> int:
    return int(duration.total_seconds() // 60)


class SettingsRepository:
    """Reads and upserts subscriber settings and reminder buckets."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get_settings(self, subscriber: SubscriberId) -> SubscriberSettings:
        document = await self._store.find_one(
            subscriber.settings_collection, subscriber.settings_query
        )
        key = subscriber.guild_id if subscriber.is_guild else subscriber.user_id
        return SubscriberSettings.from_document(
            document, key=str(key), is_guild=subscriber.is_guild
        )

    async def get_user_settings(self, user_id: str) -> SubscriberSettings:
        return await self.get_settings(SubscriberId.for_user(user_id))

    async def get_guild_settings(self, guild_id: str) -> SubscriberSettings:
        document = await self._store.find_one(GUILD_SETTINGS, {"guild": guild_id})
        return SubscriberSettings.from_document(document, key=guild_id, is_guild=True)

    async def get_reminders(self, subscriber: SubscriberId) -> list[Reminder]:
        documents = await self._store.find_many(
            REMINDERS, {subscriber.reminder_field: subscriber.reminder_entry}
        )
        reminders = [Reminder.from_document(document) for document in documents]
        return sorted(reminders, key=lambda reminder: reminder.minutes)

    async def reminder_for_minutes(self, minutes: int) -> Optional[Reminder]:
        document = await self._store.find_one(REMINDERS, {"minutes": minutes})
        return Reminder.from_document(document) if document else None

    async def add_reminder(self, subscriber: SubscriberId, duration: timedelta) -> None:
        await self._store.update_one(
            REMINDERS,
            {"minutes": duration_to_minutes(duration)},
            {"$addToSet": {subscriber.reminder_field: subscriber.reminder_entry}},
            upsert=True,
        )

    async def remove_reminder(
        self, subscriber: SubscriberId, duration: timedelta
    ) -> None:
        await self._store.update_one(
            REMINDERS,
            {"minutes": duration_to_minutes(duration)},
            {"$pull": {subscriber.reminder_field: subscriber.reminder_entry}},
            upsert=True,
        )

    async def add_filter(
        self, subscriber: SubscriberId, kind: FilterKind, value: str
    ) -> None:
        await self._update_settings(subscriber, {"$addToSet": {kind.value: value}})

    async def remove_filter(
        self, subscriber: SubscriberId, kind: FilterKind, value: str
    ) -> None:
        await self._update_settings(subscriber, {"$pull": {kind.value: value}})

    async def toggle_setting(
        self, subscriber: SubscriberId, setting: ToggleSetting
    ) -> bool:
        current = await self.get_settings(subscriber)
        new_value = not current.toggle_value(setting)
        await self._update_settings(subscriber, {"$set": {setting.value: new_value}})
        return new_value

    async def set_notification_channel(
        self, subscriber: SubscriberId, channel_id: str
    ) -> None:
        await self._update_settings(
            subscriber, {"$set": {"notifications_channel": channel_id}}
        )

    async def add_mention(self, subscriber: SubscriberId, role_id: str) -> None:
        await self._update_settings(subscriber, {"$addToSet": {"mentions": role_id}})

    async def remove_mention(self, subscriber: SubscriberId, role_id: str) -> None:
        await self._update_settings(subscriber, {"$pull": {"mentions": role_id}})

    async def list_toggled(
        self, setting: ToggleSetting
    ) -> tuple[list[SubscriberSettings], list[SubscriberSettings]]:
        """Return ``(user_settings, guild_settings)`` with ``setting`` enabled."""
        users = await self._store.find_many(USER_SETTINGS, {setting.value: True})
        guilds = await self._store.find_many(GUILD_SETTINGS, {setting.value: True})
        return (
            [
                SubscriberSettings.from_document(
                    document, key=str(document.get("user")), is_guild=False
                )
                for document in users
            ],
            [
                SubscriberSettings.from_document(
                    document, key=str(document.get("guild")), is_guild=True
                )
                for document in guilds
            ],
        )

    async def _update_settings(self, subscriber: SubscriberId, update: dict) -> None:
        await self._store.update_one(
            subscriber.settings_collection,
            subscriber.settings_query,
            update,
            upsert=True,
        )
