from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import pytest

from launchwatch.core.config import TrackingConfig
from launchwatch.integrations.discord.config import (
    DiscordBotConfig,
    DiscordCommandRegistration,
)
from launchwatch.integrations.discord.errors import DiscordPermanentError
from launchwatch.integrations.discord.service import (
    UNEXPECTED_ERROR_TEXT,
    UNROUTED_COMPONENT_TEXT,
    LaunchBotService,
)
from launchwatch.storage.documents import SqliteDocumentStore


class _FakeRest:
    def __init__(self) -> None:
        self.interaction_responses: list[dict[str, Any]] = []
        self.edited_original_interaction_responses: list[dict[str, Any]] = []
        self.deleted_originals: list[str] = []
        self.channel_messages: list[dict[str, Any]] = []
        self.command_sync_calls: list[dict[str, Any]] = []
        self.fail_command_sync = False

    async def create_interaction_response(
        self, *, interaction_id: str, interaction_token: str, payload: dict[str, Any]
    ) -> None:
        self.interaction_responses.append(
            {
                "interaction_id": interaction_id,
                "interaction_token": interaction_token,
                "payload": payload,
            }
        )

    async def edit_original_interaction_response(
        self, *, application_id: str, interaction_token: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        self.edited_original_interaction_responses.append(
            {"application_id": application_id, "payload": payload}
        )
        return {"id": f"message-{interaction_token}"}

    async def delete_original_interaction_response(
        self, *, application_id: str, interaction_token: str
    ) -> None:
        self.deleted_originals.append(interaction_token)

    async def create_channel_message(
        self, *, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        self.channel_messages.append({"channel_id": channel_id, "payload": payload})
        return {"id": f"msg-{len(self.channel_messages)}"}

    async def create_dm_channel(self, *, recipient_id: str) -> dict[str, Any]:
        return {"id": f"dm-{recipient_id}"}

    async def list_guild_roles(self, *, guild_id: str) -> list[dict[str, Any]]:
        return []

    async def list_guild_channels(self, *, guild_id: str) -> list[dict[str, Any]]:
        return []

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        if self.fail_command_sync:
            raise DiscordPermanentError("forbidden", status_code=403)
        self.command_sync_calls.append(
            {"application_id": application_id, "guild_id": guild_id}
        )
        return commands

    async def close(self) -> None:
        return None


class _FakeGateway:
    def __init__(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        self._events = events
        self.stopped = False

    async def run(self, on_dispatch: Any) -> None:
        for event_type, payload in self._events:
            await on_dispatch(event_type, payload)

    async def stop(self) -> None:
        self.stopped = True


class _FakeFeed:
    async def fetch_upcoming(self) -> list[Any]:
        return []


def _config(
    tmp_path: Path,
    *,
    sync_enabled: bool = False,
    operator_channel_id: Optional[str] = None,
) -> DiscordBotConfig:
    return DiscordBotConfig(
        root=tmp_path,
        bot_token_env="BOT",
        app_id_env="APP",
        bot_token="token",
        application_id="app-1",
        command_registration=DiscordCommandRegistration(
            enabled=sync_enabled, scope="global", guild_ids=()
        ),
        state_file=tmp_path / "state.sqlite3",
        intents=513,
        operator_channel_id=operator_channel_id,
    )


def _interaction(
    interaction_type: int, data: dict[str, Any], **extra: Any
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": "interaction-1",
        "token": "token-1",
        "application_id": "app-1",
        "type": interaction_type,
        "channel_id": "channel-1",
        "guild_id": "guild-1",
        "member": {"user": {"id": "user-1"}},
        "data": data,
    }
    payload.update(extra)
    return payload


@pytest.fixture()
async def store(tmp_path: Path):
    document_store = SqliteDocumentStore(tmp_path / "state.sqlite3")
    yield document_store
    await document_store.close()


def _service(
    tmp_path: Path,
    rest: _FakeRest,
    store: SqliteDocumentStore,
    *,
    events: Optional[list[tuple[str, dict[str, Any]]]] = None,
    **config_overrides: Any,
) -> LaunchBotService:
    return LaunchBotService(
        _config(tmp_path, **config_overrides),
        TrackingConfig(startup_delay_seconds=3600),
        logger=logging.getLogger("test.discord.service"),
        rest_client=rest,  # type: ignore[arg-type]
        gateway_client=_FakeGateway(events or []),  # type: ignore[arg-type]
        document_store=store,
        feed=_FakeFeed(),
    )


@pytest.mark.anyio
async def test_nextlaunch_without_go_launches_replies_with_notice(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)

    await service._handle_interaction(_interaction(2, {"name": "nextlaunch"}))

    (response,) = rest.interaction_responses
    assert response["payload"]["type"] == 4
    (embed,) = response["payload"]["data"]["embeds"]
    assert "marked as certain" in embed["description"]


@pytest.mark.anyio
async def test_unknown_command_gets_ephemeral_reply(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)

    await service._handle_interaction(_interaction(2, {"name": "warp"}))

    data = rest.interaction_responses[0]["payload"]["data"]
    assert data["content"] == "Unknown command: /warp"
    assert data["flags"] == 64


@pytest.mark.anyio
async def test_unrouted_component_gets_inactive_notice(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)

    await service._handle_interaction(
        _interaction(
            3,
            {"component_type": 2, "custom_id": "stale:next"},
            message={"id": "message-unknown"},
        )
    )

    data = rest.interaction_responses[0]["payload"]["data"]
    assert data == {"content": UNROUTED_COMPONENT_TEXT, "flags": 64}


@pytest.mark.anyio
async def test_incomplete_interaction_is_ignored(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)

    await service._handle_interaction({"type": 2, "id": "interaction-1"})

    assert rest.interaction_responses == []


@pytest.mark.anyio
async def test_handler_failure_reports_generic_error(
    tmp_path: Path, store: SqliteDocumentStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)

    async def explode(*_args: Any, **_kwargs: Any) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(
        "launchwatch.integrations.discord.service.next_launch", explode
    )

    await service._handle_interaction(_interaction(2, {"name": "nextlaunch"}))

    assert rest.interaction_responses[-1]["payload"]["data"]["content"] == (
        UNEXPECTED_ERROR_TEXT
    )


@pytest.mark.anyio
async def test_launches_session_is_forgotten_when_its_message_is_deleted(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    events = [
        ("INTERACTION_CREATE", _interaction(2, {"name": "launches"})),
    ]
    service = _service(tmp_path, rest, store, events=events)

    await service.run_forever()

    assert rest.interaction_responses[0]["payload"]["type"] == 5
    assert len(rest.edited_original_interaction_responses) == 1
    assert len(service.sessions) == 1

    await service._on_dispatch("MESSAGE_DELETE", {"id": "message-token-1"})

    assert len(service.sessions) == 0


@pytest.mark.anyio
async def test_clicks_from_other_users_on_a_session_are_not_routed(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)
    await service._handle_interaction(_interaction(2, {"name": "launches"}))
    close_button = rest.edited_original_interaction_responses[0]["payload"][
        "components"
    ][0]["components"][-1]

    await service._handle_interaction(
        _interaction(
            3,
            {"component_type": 2, "custom_id": close_button["custom_id"]},
            id="interaction-2",
            token="token-2",
            member={"user": {"id": "intruder"}},
            message={"id": "message-token-1"},
        )
    )

    assert rest.deleted_originals == []
    assert rest.interaction_responses[-1]["payload"]["data"]["content"] == (
        UNROUTED_COMPONENT_TEXT
    )

    await service._handle_interaction(
        _interaction(
            3,
            {"component_type": 2, "custom_id": close_button["custom_id"]},
            id="interaction-3",
            token="token-3",
            message={"id": "message-token-1"},
        )
    )

    assert rest.deleted_originals == ["token-1"]
    assert len(service.sessions) == 0


@pytest.mark.anyio
async def test_startup_sync_runs_when_enabled(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store, sync_enabled=True)

    await service.run_forever()

    assert rest.command_sync_calls == [{"application_id": "app-1", "guild_id": None}]


@pytest.mark.anyio
async def test_startup_sync_skipped_when_disabled(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store, sync_enabled=False)

    await service.run_forever()

    assert rest.command_sync_calls == []


@pytest.mark.anyio
async def test_startup_sync_failure_does_not_stop_the_bot(
    tmp_path: Path, store: SqliteDocumentStore, caplog: pytest.LogCaptureFixture
) -> None:
    rest = _FakeRest()
    rest.fail_command_sync = True
    events = [("INTERACTION_CREATE", _interaction(2, {"name": "warp"}))]
    service = _service(tmp_path, rest, store, events=events, sync_enabled=True)

    with caplog.at_level(logging.WARNING):
        await service.run_forever()

    assert "discord.commands.sync.startup_failed" in caplog.text
    assert rest.interaction_responses[0]["payload"]["data"]["content"] == (
        "Unknown command: /warp"
    )


@pytest.mark.anyio
async def test_task_crashes_are_reported_to_the_operator_channel(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store, operator_channel_id="ops")

    await service._report_crash("launchwatch:poll_cycle", RuntimeError("feed down"))

    (message,) = rest.channel_messages
    assert message["channel_id"] == "ops"
    assert "launchwatch:poll_cycle" in message["payload"]["content"]
    assert "RuntimeError: feed down" in message["payload"]["content"]


@pytest.mark.anyio
async def test_task_crashes_are_not_posted_without_operator_channel(
    tmp_path: Path, store: SqliteDocumentStore
) -> None:
    rest = _FakeRest()
    service = _service(tmp_path, rest, store)

    await service._report_crash("launchwatch:poll_cycle", RuntimeError("feed down"))

    assert rest.channel_messages == []
