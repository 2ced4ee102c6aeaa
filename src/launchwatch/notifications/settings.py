from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Union

USER_SETTINGS = "user_settings"
GUILD_SETTINGS = "guild_settings"
REMINDERS = "reminders"

_PLAIN_FILTER_RE = re.compile(r"[\w\s\-']+")
_WRAPPED_FILTER_RE = re.compile(r"\(\?i\)\\b(?P<text>.+)\\b")


class FilterKind(str, enum.Enum):
    DENY = "filters"
    ALLOW = "allow_filters"
    PAYLOAD = "payload_filters"


class ToggleSetting(str, enum.Enum):
    SCRUB = "scrub_notifications"
    OUTCOME = "outcome_notifications"
    MENTION_OTHERS = "mention_others"


class FilterInputError(ValueError):
    """Raised for payload filter input that is empty or not a valid regex."""


@dataclass(frozen=True)
class SubscriberId:
    """Either a user (DM reminders) or a channel inside a guild."""

    user_id: Optional[str] = None
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.user_id is None and (self.guild_id is None or self.channel_id is None):
            raise ValueError("SubscriberId needs a user_id or a guild_id and channel_id")

    @classmethod
    def for_user(cls, user_id: str) -> "SubscriberId":
        return cls(user_id=user_id)

    @classmethod
    def for_channel(cls, guild_id: str, channel_id: str) -> "SubscriberId":
        return cls(guild_id=guild_id, channel_id=channel_id)

    @property
    def is_guild(self) -> bool:
        return self.user_id is None

    @property
    def settings_collection(self) -> str:
        return GUILD_SETTINGS if self.is_guild else USER_SETTINGS

    @property
    def settings_query(self) -> dict[str, Any]:
        if self.is_guild:
            return {"guild": self.guild_id}
        return {"user": self.user_id}

    @property
    def reminder_field(self) -> str:
        return "channels" if self.is_guild else "users"

    @property
    def reminder_entry(self) -> Union[str, dict[str, str]]:
        if self.is_guild:
            return {"guild": str(self.guild_id), "channel": str(self.channel_id)}
        return str(self.user_id)


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if item is not None)


@dataclass(frozen=True)
class SubscriberSettings:
    key: str
    is_guild: bool = False
    filters: tuple[str, ...] = ()
    allow_filters: tuple[str, ...] = ()
    payload_filters: tuple[str, ...] = ()
    mentions: tuple[str, ...] = ()
    scrub_notifications: bool = False
    outcome_notifications: bool = False
    mention_others: bool = False
    notifications_channel: Optional[str] = None

    @classmethod
    def from_document(
        cls, document: Optional[dict[str, Any]], *, key: str, is_guild: bool
    ) -> "SubscriberSettings":
        doc = document or {}
        channel = doc.get("notifications_channel")
        return cls(
            key=str(doc.get("guild" if is_guild else "user", key)),
            is_guild=is_guild,
            filters=_str_tuple(doc.get("filters")),
            allow_filters=_str_tuple(doc.get("allow_filters")),
            payload_filters=_str_tuple(doc.get("payload_filters")),
            mentions=_str_tuple(doc.get("mentions")),
            scrub_notifications=bool(doc.get("scrub_notifications", False)),
            outcome_notifications=bool(doc.get("outcome_notifications", False)),
            mention_others=bool(doc.get("mention_others", False)),
            notifications_channel=str(channel) if channel else None,
        )

    def filter_values(self, kind: FilterKind) -> tuple[str, ...]:
        return getattr(self, kind.value)

    def toggle_value(self, setting: ToggleSetting) -> bool:
        return bool(getattr(self, setting.value))

    def mention_text(self) -> str:
        return "".join(f" <@&{role_id}>" for role_id in self.mentions)


@dataclass(frozen=True)
class ReminderChannel:
    guild_id: str
    channel_id: str


@dataclass(frozen=True)
class Reminder:
    minutes: int
    users: tuple[str, ...] = ()
    channels: tuple[ReminderChannel, ...] = ()

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.minutes)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Reminder":
        channels: list[ReminderChannel] = []
        for entry in document.get("channels") or []:
            if not isinstance(entry, dict):
                continue
            guild_id = entry.get("guild")
            channel_id = entry.get("channel")
            if guild_id and channel_id:
                channels.append(ReminderChannel(str(guild_id), str(channel_id)))
        return cls(
            minutes=int(document.get("minutes", 0)),
            users=_str_tuple(document.get("users")),
            channels=tuple(channels),
        )


def filter_from_string_input(text: str) -> str:
    """Turn menu input into a payload regex.

    Plain words become a case-insensitive whole-word match; anything that
    already looks like a regex is kept as typed.
    """
    value = text.strip()
    if not value:
        raise FilterInputError("payload filter must not be empty")
    if _PLAIN_FILTER_RE.fullmatch(value):
        return rf"(?i)\b{value}\b"
    try:
        re.compile(value)
    except re.error as exc:
        raise FilterInputError(f"invalid payload filter {value!r}: {exc}") from exc
    return value


def regex_filter_to_string(pattern: str) -> str:
    match = _WRAPPED_FILTER_RE.fullmatch(pattern)
    if match and _PLAIN_FILTER_RE.fullmatch(match.group("text")):
        return match.group("text")
    return pattern
