from __future__ import annotations

from typing import Any

from ...interactive.models import InteractionEvent
from .rest import DiscordRestClient


class DiscordMessagingSurface:
    """Messaging surface backed by the Discord REST API."""

    def __init__(self, rest: DiscordRestClient, *, application_id: str) -> None:
        self._rest = rest
        self._application_id = application_id
        self._dm_channels: dict[str, str] = {}

    def _application_for(self, event: InteractionEvent) -> str:
        return event.application_id or self._application_id

    async def respond(self, event: InteractionEvent, payload: dict[str, Any]) -> None:
        await self._rest.create_interaction_response(
            interaction_id=event.interaction_id,
            interaction_token=event.token,
            payload=payload,
        )

    async def edit_original(
        self, event: InteractionEvent, payload: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._rest.edit_original_interaction_response(
            application_id=self._application_for(event),
            interaction_token=event.token,
            payload=payload,
        )

    async def delete_original(self, event: InteractionEvent) -> None:
        await self._rest.delete_original_interaction_response(
            application_id=self._application_for(event),
            interaction_token=event.token,
        )

    async def list_guild_roles(self, guild_id: str) -> list[dict[str, Any]]:
        return await self._rest.list_guild_roles(guild_id=guild_id)

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, Any]]:
        return await self._rest.list_guild_channels(guild_id=guild_id)

    async def send_channel_message(
        self, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._rest.create_channel_message(
            channel_id=channel_id, payload=payload
        )

    async def send_direct_message(
        self, user_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        channel_id = self._dm_channels.get(user_id)
        if channel_id is None:
            channel = await self._rest.create_dm_channel(recipient_id=user_id)
            channel_id = str(channel.get("id") or "")
            if not channel_id:
                raise ValueError(f"Discord returned no DM channel for user {user_id}")
            self._dm_channels[user_id] = channel_id
        return await self.send_channel_message(channel_id, payload)
