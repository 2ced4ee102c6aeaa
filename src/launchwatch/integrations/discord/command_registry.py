from __future__ import annotations

import logging
from typing import Any

from ...core.logging_utils import log_event
from ...core.retry import retry_transient
from .rest import DiscordRestClient


async def sync_commands(
    rest: DiscordRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    scope: str,
    guild_ids: tuple[str, ...],
    logger: logging.Logger,
) -> None:
    normalized_scope = scope.strip().lower()
    if normalized_scope == "global":
        targets: tuple[str | None, ...] = (None,)
    elif normalized_scope == "guild":
        normalized_guild_ids = tuple(
            sorted({guild_id.strip() for guild_id in guild_ids if guild_id.strip()})
        )
        if not normalized_guild_ids:
            raise ValueError("guild scope requires at least one guild_id")
        targets = normalized_guild_ids
    else:
        raise ValueError("scope must be 'global' or 'guild'")

    for guild_id in targets:
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            guild_id=guild_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope=normalized_scope,
            guild_id=guild_id,
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )


async def sync_commands_with_retry(
    rest: DiscordRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    scope: str,
    guild_ids: tuple[str, ...],
    logger: logging.Logger,
    max_attempts: int = 5,
    base_wait: float = 1.0,
) -> None:
    """``sync_commands`` retried while Discord reports transient failures."""

    @retry_transient(max_attempts=max_attempts, base_wait=base_wait, logger=logger)
    async def attempt() -> None:
        await sync_commands(
            rest,
            application_id=application_id,
            commands=commands,
            scope=scope,
            guild_ids=guild_ids,
            logger=logger,
        )

    await attempt()
