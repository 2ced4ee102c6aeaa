from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, NoReturn, Optional

import typer

from .core.config import AppConfig, ConfigError, load_app_config
from .core.logging_utils import setup_rotating_logger
from .core.time_utils import utc_now
from .integrations.discord.command_registry import sync_commands_with_retry
from .integrations.discord.commands import build_application_commands
from .integrations.discord.config import DiscordBotConfig, DiscordBotConfigError
from .integrations.discord.rest import DiscordRestClient
from .integrations.discord.service import create_launch_bot_service
from .launches.feed import LaunchFeedClient, LaunchFeedError
from .launches.models import LaunchRecord, order_by_schedule

app = typer.Typer(add_completion=False, help="Spaceflight launch reminders for Discord.")

LOGGER_NAME = "launchwatch"


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _load_config(path: Optional[Path]) -> AppConfig:
    try:
        return load_app_config(path or Path.cwd())
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


def _discord_config(config: AppConfig) -> DiscordBotConfig:
    try:
        return DiscordBotConfig.from_raw(root=config.root, raw=config.section("discord"))
    except DiscordBotConfigError as exc:
        raise_exit(str(exc), cause=exc)


async def _sync_application_commands(
    config: DiscordBotConfig,
    *,
    logger: logging.Logger,
    rest_client_factory: Callable[..., Any] = DiscordRestClient,
    sync_func: Callable[..., Awaitable[None]] = sync_commands_with_retry,
) -> None:
    bot_token, application_id = config.require_credentials()
    async with rest_client_factory(bot_token=bot_token) as rest:
        await sync_func(
            rest,
            application_id=application_id,
            commands=build_application_commands(),
            scope=config.command_registration.scope,
            guild_ids=config.command_registration.guild_ids,
            logger=logger,
        )


def format_launch_line(record: LaunchRecord) -> str:
    net = record.net.strftime("%Y-%m-%d %H:%M UTC")
    return (
        f"{record.ordinal + 1:>3}. {net}  {record.status.label:<15} "
        f"{record.vehicle} | {record.payload} ({record.lsp})"
    )


async def _fetch_upcoming(config: AppConfig) -> list[LaunchRecord]:
    tracking = config.tracking
    async with LaunchFeedClient(
        feed_url=tracking.feed_url,
        limit=tracking.feed_limit,
        timeout_seconds=float(tracking.request_timeout_seconds),
    ) as feed:
        return await feed.fetch_upcoming()


@app.command("run")
def run(
    path: Optional[Path] = typer.Option(
        None, "--path", help="Directory holding launchwatch.yml, or the file itself"
    ),
) -> None:
    """Start the bot: gateway, slash commands and launch tracking."""
    config = _load_config(path)
    discord_cfg = _discord_config(config)
    try:
        discord_cfg.require_credentials()
        logger = setup_rotating_logger(LOGGER_NAME, config.log)
        service = create_launch_bot_service(discord_cfg, config.tracking, logger=logger)
        asyncio.run(service.run_forever())
    except (DiscordBotConfigError, ValueError) as exc:
        raise_exit(str(exc), cause=exc)
    except KeyboardInterrupt:
        typer.echo("Launch bot stopped.")


@app.command("register-commands")
def register_commands(
    path: Optional[Path] = typer.Option(
        None, "--path", help="Directory holding launchwatch.yml, or the file itself"
    ),
) -> None:
    """Synchronize the slash commands with Discord and exit."""
    config = _load_config(path)
    discord_cfg = _discord_config(config)
    try:
        asyncio.run(
            _sync_application_commands(
                discord_cfg, logger=logging.getLogger("launchwatch.discord.commands")
            )
        )
    except (DiscordBotConfigError, ValueError) as exc:
        raise_exit(str(exc), cause=exc)
    typer.echo("Discord application commands synchronized.")


@app.command("upcoming")
def upcoming(
    path: Optional[Path] = typer.Option(
        None, "--path", help="Directory holding launchwatch.yml, or the file itself"
    ),
    limit: int = typer.Option(10, "--limit", min=1, help="Launches to print"),
) -> None:
    """Fetch the launch feed once and print the next launches."""
    config = _load_config(path)
    try:
        records = asyncio.run(_fetch_upcoming(config))
    except LaunchFeedError as exc:
        raise_exit(f"Could not fetch launches: {exc}", cause=exc)
    now = utc_now()
    ordered = [record for record in order_by_schedule(records) if record.net >= now]
    if not ordered:
        typer.echo("No upcoming launches found.")
        return
    for record in ordered[:limit]:
        typer.echo(format_launch_line(record))


def main() -> None:
    app()
