from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import DISCORD_INTENT_GUILD_MESSAGES, DISCORD_INTENT_GUILDS

DEFAULT_BOT_TOKEN_ENV = "LAUNCHWATCH_DISCORD_BOT_TOKEN"
DEFAULT_APP_ID_ENV = "LAUNCHWATCH_DISCORD_APP_ID"
DEFAULT_STATE_FILE = ".launchwatch/launchwatch.sqlite3"
DEFAULT_COMMAND_SCOPE = "global"
DEFAULT_INTENTS = DISCORD_INTENT_GUILDS | DISCORD_INTENT_GUILD_MESSAGES


class DiscordBotConfigError(Exception):
    """Raised when discord bot config is invalid."""


@dataclass(frozen=True)
class DiscordCommandRegistration:
    enabled: bool
    scope: str
    guild_ids: tuple[str, ...]


@dataclass(frozen=True)
class DiscordBotConfig:
    root: Path
    bot_token_env: str
    app_id_env: str
    bot_token: Optional[str]
    application_id: Optional[str]
    command_registration: DiscordCommandRegistration
    state_file: Path
    intents: int
    operator_channel_id: Optional[str] = None

    @classmethod
    def from_raw(cls, *, root: Path, raw: dict[str, Any]) -> "DiscordBotConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        bot_token_env = str(cfg.get("bot_token_env", DEFAULT_BOT_TOKEN_ENV)).strip()
        app_id_env = str(cfg.get("app_id_env", DEFAULT_APP_ID_ENV)).strip()
        if not bot_token_env:
            raise DiscordBotConfigError("discord.bot_token_env must be non-empty")
        if not app_id_env:
            raise DiscordBotConfigError("discord.app_id_env must be non-empty")

        registration_raw = cfg.get("command_registration")
        registration_cfg = registration_raw if isinstance(registration_raw, dict) else {}
        scope_raw = (
            str(registration_cfg.get("scope", DEFAULT_COMMAND_SCOPE)).strip().lower()
        )
        if scope_raw not in {"global", "guild"}:
            raise DiscordBotConfigError(
                "discord.command_registration.scope must be 'global' or 'guild'"
            )
        guild_ids = tuple(_parse_string_ids(registration_cfg.get("guild_ids")))
        if scope_raw == "guild" and not guild_ids:
            raise DiscordBotConfigError(
                "discord.command_registration.guild_ids is required for guild scope"
            )
        command_registration = DiscordCommandRegistration(
            enabled=_parse_bool_or_default(
                registration_cfg.get("enabled"),
                default=True,
                key="discord.command_registration.enabled",
            ),
            scope=scope_raw,
            guild_ids=guild_ids,
        )

        state_file_value = cfg.get("state_file", DEFAULT_STATE_FILE)
        if not isinstance(state_file_value, str) or not state_file_value.strip():
            raise DiscordBotConfigError("discord.state_file must be a string path")

        intents_value = cfg.get("intents", DEFAULT_INTENTS)
        if isinstance(intents_value, bool) or not isinstance(intents_value, int):
            raise DiscordBotConfigError("discord.intents must be an integer")
        if intents_value < 0:
            raise DiscordBotConfigError("discord.intents must be >= 0")

        operator_ids = _parse_string_ids(cfg.get("operator_channel_id"))
        if len(operator_ids) > 1:
            raise DiscordBotConfigError(
                "discord.operator_channel_id must be a single channel id"
            )

        return cls(
            root=root,
            bot_token_env=bot_token_env,
            app_id_env=app_id_env,
            bot_token=os.environ.get(bot_token_env),
            application_id=os.environ.get(app_id_env),
            command_registration=command_registration,
            state_file=(root / state_file_value).resolve(),
            intents=intents_value,
            operator_channel_id=operator_ids[0] if operator_ids else None,
        )

    def require_credentials(self) -> tuple[str, str]:
        """Return ``(bot_token, application_id)`` or fail naming the unset env var."""
        if not self.bot_token:
            raise DiscordBotConfigError(f"env var {self.bot_token_env} is unset")
        if not self.application_id:
            raise DiscordBotConfigError(f"env var {self.app_id_env} is unset")
        return self.bot_token, self.application_id


def _parse_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise DiscordBotConfigError(f"{key} must be a boolean")
