from __future__ import annotations

from typing import Any, Protocol

from ..core.ports import MessageSender
from .models import InteractionEvent

# Interaction callback types understood by the messaging surface.
RESPONSE_CHANNEL_MESSAGE = 4
RESPONSE_DEFERRED_CHANNEL_MESSAGE = 5
RESPONSE_DEFERRED_UPDATE_MESSAGE = 6
RESPONSE_UPDATE_MESSAGE = 7
RESPONSE_MODAL = 9

EPHEMERAL_FLAG = 64


class MessagingSurface(MessageSender, Protocol):
    async def respond(self, event: InteractionEvent, payload: dict[str, Any]) -> None: ...

    async def edit_original(
        self, event: InteractionEvent, payload: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def delete_original(self, event: InteractionEvent) -> None: ...

    async def list_guild_roles(self, guild_id: str) -> list[dict[str, Any]]: ...

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, Any]]: ...
