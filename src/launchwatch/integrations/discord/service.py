from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import Any, Optional

from ...commands.launches import list_launches, next_launch
from ...commands.reminders import notify_channel, notify_me
from ...core.config import TrackingConfig
from ...core.logging_utils import log_event
from ...interactive.models import InteractionEvent, InteractionKind
from ...interactive.registry import InteractionRegistry
from ...interactive.session import SessionTable, route_interaction
from ...interactive.surface import EPHEMERAL_FLAG, RESPONSE_CHANNEL_MESSAGE
from ...launches.changes import ChangeDetector
from ...launches.feed import LaunchFeedClient
from ...launches.snapshot import LaunchSnapshotStore
from ...launches.tracking import LaunchFeed, LaunchTracker
from ...notifications.fanout import NotificationFanout
from ...notifications.store import SettingsRepository
from ...storage.documents import SqliteDocumentStore
from .command_registry import sync_commands_with_retry
from .commands import (
    LAUNCHES,
    NEXTLAUNCH,
    NOTIFYCHANNEL,
    NOTIFYME,
    build_application_commands,
)
from .config import DiscordBotConfig
from .constants import DISCORD_MAX_MESSAGE_LENGTH
from .errors import DiscordAPIError, DiscordTransientError
from .gateway import DiscordGatewayClient
from .interactions import parse_interaction_event
from .rest import DiscordRestClient
from .surface import DiscordMessagingSurface

UNROUTED_COMPONENT_TEXT = "This menu is no longer active or belongs to someone else."
UNEXPECTED_ERROR_TEXT = "An unexpected error occurred. Please try again later."


class LaunchBotService:
    def __init__(
        self,
        config: DiscordBotConfig,
        tracking: TrackingConfig,
        *,
        logger: logging.Logger,
        rest_client: Optional[DiscordRestClient] = None,
        gateway_client: Optional[DiscordGatewayClient] = None,
        document_store: Optional[SqliteDocumentStore] = None,
        feed: Optional[LaunchFeed] = None,
    ) -> None:
        self._config = config
        self._tracking_config = tracking
        self._logger = logger

        self._rest = (
            rest_client
            if rest_client is not None
            else DiscordRestClient(bot_token=config.bot_token or "")
        )
        self._owns_rest = rest_client is None

        self._gateway = (
            gateway_client
            if gateway_client is not None
            else DiscordGatewayClient(
                bot_token=config.bot_token or "",
                intents=config.intents,
                logger=logger,
            )
        )
        self._owns_gateway = gateway_client is None

        self._store = (
            document_store
            if document_store is not None
            else SqliteDocumentStore(config.state_file)
        )
        self._owns_store = document_store is None

        self._feed: LaunchFeed = (
            feed
            if feed is not None
            else LaunchFeedClient(
                feed_url=tracking.feed_url,
                limit=tracking.feed_limit,
                timeout_seconds=float(tracking.request_timeout_seconds),
            )
        )
        self._owns_feed = feed is None

        self.surface = DiscordMessagingSurface(
            self._rest, application_id=config.application_id or ""
        )
        self.registry = InteractionRegistry(logger=logger)
        self.sessions = SessionTable(logger=logger)
        self._interaction_tasks: set[asyncio.Task[None]] = set()
        self.snapshots = LaunchSnapshotStore(
            detector=ChangeDetector(
                scrub_threshold=timedelta(minutes=tracking.scrub_threshold_minutes)
            )
        )
        self.settings = SettingsRepository(self._store)
        self.fanout = NotificationFanout(
            settings=self.settings, sender=self.surface, logger=logger
        )
        self.tracker = LaunchTracker(
            feed=self._feed,
            snapshots=self.snapshots,
            fanout=self.fanout,
            logger=logger,
            poll_interval_seconds=float(tracking.poll_interval_seconds),
            refresh_every=tracking.refresh_every,
            startup_delay_seconds=float(tracking.startup_delay_seconds),
            on_task_crash=self._report_crash,
        )

    async def run_forever(self) -> None:
        await self._store.initialize()
        await self._sync_application_commands_on_startup()
        tracker_task = asyncio.create_task(self.tracker.run_forever())
        try:
            log_event(
                self._logger,
                logging.INFO,
                "discord.bot.starting",
                state_file=str(self._config.state_file),
                feed_url=self._tracking_config.feed_url,
            )
            await self._gateway.run(self._on_dispatch)
        finally:
            with contextlib.suppress(Exception):
                await self.wait_idle()
            await self.tracker.stop()
            tracker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await tracker_task
            await self._shutdown()

    async def wait_idle(self) -> None:
        """Wait for in-flight interaction handlers to finish."""
        while self._interaction_tasks:
            await asyncio.gather(*list(self._interaction_tasks), return_exceptions=True)

    async def sync_application_commands(self) -> None:
        registration = self._config.command_registration
        application_id = (self._config.application_id or "").strip()
        if not application_id:
            raise ValueError("missing Discord application id for command sync")
        await sync_commands_with_retry(
            self._rest,
            application_id=application_id,
            commands=build_application_commands(),
            scope=registration.scope,
            guild_ids=registration.guild_ids,
            logger=self._logger,
        )

    async def _sync_application_commands_on_startup(self) -> None:
        if not self._config.command_registration.enabled:
            log_event(self._logger, logging.INFO, "discord.commands.sync.disabled")
            return
        try:
            await self.sync_application_commands()
        except ValueError:
            raise
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.sync.startup_failed",
                scope=self._config.command_registration.scope,
                exc=exc,
            )

    async def _shutdown(self) -> None:
        for task in list(self._interaction_tasks):
            task.cancel()
        if self._owns_gateway:
            with contextlib.suppress(Exception):
                await self._gateway.stop()
        if self._owns_feed and isinstance(self._feed, LaunchFeedClient):
            with contextlib.suppress(Exception):
                await self._feed.close()
        if self._owns_rest:
            with contextlib.suppress(Exception):
                await self._rest.close()
        if self._owns_store:
            with contextlib.suppress(Exception):
                await self._store.close()
        await self.registry.clear()

    async def _on_dispatch(self, event_type: str, payload: dict[str, Any]) -> None:
        if event_type == "INTERACTION_CREATE":
            task = asyncio.create_task(self._handle_interaction(payload))
            self._interaction_tasks.add(task)
            task.add_done_callback(self._interaction_tasks.discard)
        elif event_type == "MESSAGE_DELETE":
            await self._handle_message_delete(payload)

    async def _handle_message_delete(self, payload: dict[str, Any]) -> None:
        message_id = payload.get("id")
        session = await self.sessions.for_message(
            str(message_id) if message_id else None
        )
        if session is None:
            return
        await session.forget()
        log_event(
            self._logger,
            logging.DEBUG,
            "discord.session.anchor_deleted",
            session_id=session.session_id,
            message_id=message_id,
        )

    async def _handle_interaction(self, interaction_payload: dict[str, Any]) -> None:
        event = parse_interaction_event(interaction_payload)
        if event is None:
            self._logger.warning(
                "handle_interaction: unsupported or incomplete interaction (type=%s)",
                interaction_payload.get("type"),
            )
            return

        try:
            if event.kind is InteractionKind.COMMAND:
                await self._handle_command(event)
                return
            registration = await route_interaction(
                event,
                sessions=self.sessions,
                registry=self.registry,
                logger=self._logger,
            )
            if registration is None:
                await self._respond_ephemeral(event, UNROUTED_COMPONENT_TEXT)
        except DiscordTransientError as exc:
            user_msg = exc.user_message or "An error occurred. Please try again later."
            await self._respond_ephemeral(event, user_msg)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.interaction.dispatch_failed",
                kind=event.kind,
                command=event.command_name or None,
                custom_id=event.custom_id,
                channel_id=event.channel_id,
                exc=exc,
            )
            await self._respond_ephemeral(event, UNEXPECTED_ERROR_TEXT)

    async def _handle_command(self, event: InteractionEvent) -> None:
        name = event.command_name
        session_deps = {
            "surface": self.surface,
            "registry": self.registry,
            "sessions": self.sessions,
            "logger": self._logger,
        }
        if name == NOTIFYME:
            await notify_me(event, settings=self.settings, **session_deps)
        elif name == NOTIFYCHANNEL:
            await notify_channel(event, settings=self.settings, **session_deps)
        elif name == NEXTLAUNCH:
            await next_launch(event, snapshots=self.snapshots, surface=self.surface)
        elif name == LAUNCHES:
            await list_launches(event, snapshots=self.snapshots, **session_deps)
        else:
            await self._respond_ephemeral(event, f"Unknown command: /{name}")

    async def _respond_ephemeral(self, event: InteractionEvent, text: str) -> None:
        try:
            await self.surface.respond(
                event,
                {
                    "type": RESPONSE_CHANNEL_MESSAGE,
                    "data": {
                        "content": text[:DISCORD_MAX_MESSAGE_LENGTH],
                        "flags": EPHEMERAL_FLAG,
                    },
                },
            )
        except DiscordAPIError as exc:
            self._logger.error(
                "Failed to send ephemeral response: %s (interaction_id=%s)",
                exc,
                event.interaction_id,
            )

    async def _report_crash(self, task_name: str, exc: BaseException) -> None:
        channel_id = self._config.operator_channel_id
        if not channel_id:
            return
        text = f"Background task `{task_name}` crashed: {type(exc).__name__}: {exc}"
        await self.surface.send_channel_message(
            channel_id, {"content": text[:DISCORD_MAX_MESSAGE_LENGTH]}
        )


def create_launch_bot_service(
    config: DiscordBotConfig,
    tracking: TrackingConfig,
    *,
    logger: logging.Logger,
) -> LaunchBotService:
    return LaunchBotService(config, tracking, logger=logger)
