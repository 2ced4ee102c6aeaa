"""Test harness configuration.

This repo uses a `src/` layout. Ensure tests always import the in-repo code
rather than an older installed `launchwatch` package.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 120


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def anyio_backend() -> str:
    """Run `@pytest.mark.anyio` tests on asyncio, the loop the code targets."""
    return "asyncio"


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


class RecordingSurface:
    """In-memory messaging surface that records every outbound call."""

    def __init__(self) -> None:
        self.responses: list[tuple[str, dict[str, Any]]] = []
        self.edits: list[tuple[str, dict[str, Any]]] = []
        self.deleted: list[str] = []
        self.channel_messages: list[tuple[str, dict[str, Any]]] = []
        self.direct_messages: list[tuple[str, dict[str, Any]]] = []
        self.roles: list[dict[str, Any]] = []
        self.channels: list[dict[str, Any]] = []
        self.fail_edit = False
        self.fail_targets: set[str] = set()
        self._next_message = 0

    async def respond(self, event: Any, payload: dict[str, Any]) -> None:
        self.responses.append((event.interaction_id, payload))

    async def edit_original(self, event: Any, payload: dict[str, Any]) -> dict[str, Any]:
        if self.fail_edit:
            raise RuntimeError("edit failed")
        self.edits.append((event.token, payload))
        return {"id": f"message-{event.token}"}

    async def delete_original(self, event: Any) -> None:
        self.deleted.append(event.token)

    async def list_guild_roles(self, guild_id: str) -> list[dict[str, Any]]:
        return list(self.roles)

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, Any]]:
        return list(self.channels)

    async def send_channel_message(
        self, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        if f"channel:{channel_id}" in self.fail_targets:
            raise RuntimeError(f"cannot post in {channel_id}")
        self.channel_messages.append((channel_id, payload))
        self._next_message += 1
        return {"id": f"sent-{self._next_message}"}

    async def send_direct_message(
        self, user_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        if f"user:{user_id}" in self.fail_targets:
            raise RuntimeError(f"cannot DM {user_id}")
        self.direct_messages.append((user_id, payload))
        self._next_message += 1
        return {"id": f"sent-{self._next_message}"}

    @property
    def last_edit(self) -> dict[str, Any]:
        return self.edits[-1][1]

    @property
    def last_response(self) -> dict[str, Any]:
        return self.responses[-1][1]

    def button_ids(self) -> dict[str, str]:
        """Map button labels of the last rendered view to their custom ids."""
        return {
            component["label"]: component["custom_id"]
            for row in self.last_edit.get("components", [])
            for component in row["components"]
        }


@pytest.fixture()
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture()
def make_event() -> Callable[..., Any]:
    """Factory for interaction events with sensible defaults."""
    from launchwatch.interactive.models import (
        ComponentKind,
        InteractionEvent,
        InteractionKind,
    )

    counter = {"value": 0}

    def factory(
        kind: str = "component",
        *,
        user_id: str = "user-1",
        channel_id: str = "channel-1",
        guild_id: Optional[str] = None,
        message_id: Optional[str] = None,
        custom_id: Optional[str] = None,
        component_kind: Optional[str] = None,
        values: tuple[str, ...] = (),
        fields: Optional[dict[str, str]] = None,
        command: Optional[str] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> InteractionEvent:
        counter["value"] += 1
        interaction_kind = InteractionKind(kind)
        resolved_component = None
        if interaction_kind is InteractionKind.COMPONENT:
            resolved_component = ComponentKind(component_kind or "button")
        return InteractionEvent(
            interaction_id=f"interaction-{counter['value']}",
            token=f"token-{counter['value']}",
            kind=interaction_kind,
            user_id=user_id,
            channel_id=channel_id,
            guild_id=guild_id,
            message_id=message_id,
            custom_id=custom_id,
            component_kind=resolved_component,
            values=values,
            fields=tuple((fields or {}).items()),
            command_path=(command,) if command else (),
            options=options or {},
            application_id="app-1",
        )

    return factory
