from __future__ import annotations

from typing import Any, Protocol


class MessageSender(Protocol):
    """Outbound delivery used by background notifications."""

    async def send_channel_message(
        self, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def send_direct_message(
        self, user_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]: ...
