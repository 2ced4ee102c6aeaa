from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from launchwatch.core.exceptions import PermanentError, TransientError
from launchwatch.integrations.discord.errors import (
    DiscordAPIError,
    DiscordPermanentError,
    DiscordTransientError,
)
from launchwatch.integrations.discord.rest import DiscordRestClient


async def _configure_mock_client(
    client: DiscordRestClient, transport: httpx.MockTransport
) -> None:
    await client._client.aclose()
    client._client = httpx.AsyncClient(
        base_url="https://discord.test/api/v10",
        transport=transport,
        timeout=10.0,
    )


def _client(**kwargs: Any) -> DiscordRestClient:
    return DiscordRestClient(
        bot_token="abc123", base_url="https://discord.test/api/v10", **kwargs
    )


@pytest.fixture()
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr(
        "launchwatch.integrations.discord.rest.asyncio.sleep", fake_sleep
    )
    return sleeps


@pytest.mark.anyio
async def test_discord_rest_client_sets_authorization_header() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["authorization"] = request.headers.get("Authorization")
        observed["path"] = request.url.path
        return httpx.Response(200, json={"url": "wss://gateway.discord.gg"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.get_gateway_bot()
    finally:
        await client.close()

    assert payload["url"] == "wss://gateway.discord.gg"
    assert observed["authorization"] == "Bot abc123"
    assert observed["path"] == "/api/v10/gateway/bot"


@pytest.mark.anyio
async def test_command_routes_global_and_guild() -> None:
    observed_paths: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed_paths.append((request.method, request.url.path))
        if request.method == "PUT":
            return httpx.Response(200, json=[{"id": "cmd-1"}, "junk"])
        return httpx.Response(200, json=[])

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        await client.list_application_commands(application_id="app-1")
        updated = await client.bulk_overwrite_application_commands(
            application_id="app-1",
            guild_id="guild-2",
            commands=[{"name": "launches"}],
        )
    finally:
        await client.close()

    assert updated == [{"id": "cmd-1"}]
    assert observed_paths == [
        ("GET", "/api/v10/applications/app-1/commands"),
        ("PUT", "/api/v10/applications/app-1/guilds/guild-2/commands"),
    ]


@pytest.mark.anyio
async def test_interaction_and_message_routes() -> None:
    observed: list[tuple[str, str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        observed.append((request.method, request.url.path, body))
        if request.method in {"DELETE"} or request.url.path.endswith("/callback"):
            return httpx.Response(204)
        if request.url.path.endswith("/users/@me/channels"):
            return httpx.Response(200, json={"id": "dm-1"})
        if request.url.path.endswith("/roles"):
            return httpx.Response(200, json=[{"id": "r1", "name": "Launch"}])
        return httpx.Response(200, json={"id": "msg-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        await client.create_interaction_response(
            interaction_id="i1", interaction_token="tok", payload={"type": 5}
        )
        edited = await client.edit_original_interaction_response(
            application_id="app-1", interaction_token="tok", payload={"content": "x"}
        )
        await client.delete_original_interaction_response(
            application_id="app-1", interaction_token="tok"
        )
        dm = await client.create_dm_channel(recipient_id="u1")
        roles = await client.list_guild_roles(guild_id="g1")
    finally:
        await client.close()

    assert edited == {"id": "msg-1"}
    assert dm == {"id": "dm-1"}
    assert roles == [{"id": "r1", "name": "Launch"}]
    assert [(method, path) for method, path, _ in observed] == [
        ("POST", "/api/v10/interactions/i1/tok/callback"),
        ("PATCH", "/api/v10/webhooks/app-1/tok/messages/@original"),
        ("DELETE", "/api/v10/webhooks/app-1/tok/messages/@original"),
        ("POST", "/api/v10/users/@me/channels"),
        ("GET", "/api/v10/guilds/g1/roles"),
    ]
    assert observed[3][2] == {"recipient_id": "u1"}


@pytest.mark.anyio
async def test_rate_limit_retry_after_retries_and_succeeds(no_sleep: list[float]) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            return httpx.Response(429, headers={"Retry-After": "0.25"}, json={})
        return httpx.Response(200, json={"id": "msg-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.create_channel_message(
            channel_id="chan-1",
            payload={"content": "hello"},
        )
    finally:
        await client.close()

    assert payload == {"id": "msg-1"}
    assert attempts["count"] == 3
    assert no_sleep == [0.25, 0.25]


@pytest.mark.anyio
async def test_rate_limit_without_budget_raises_transient(no_sleep: list[float]) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "2"}, json={})

    client = _client(max_retries=1)
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordTransientError) as exc_info:
            await client.create_channel_message(channel_id="c", payload={})
    finally:
        await client.close()

    assert exc_info.value.status_code == 429
    assert exc_info.value.retry_after == 2.0
    assert isinstance(exc_info.value, TransientError)
    assert no_sleep == [2.0]


@pytest.mark.anyio
async def test_server_errors_retry_with_backoff_then_fail(no_sleep: list[float]) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(502, text="bad gateway")

    client = _client(max_retries=2)
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordTransientError, match="status=502"):
            await client.get_gateway_bot()
    finally:
        await client.close()

    assert attempts["count"] == 3
    assert len(no_sleep) == 2


@pytest.mark.anyio
async def test_network_errors_are_retried(no_sleep: list[float]) -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"url": "wss://ok"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.get_gateway_bot()
    finally:
        await client.close()

    assert payload == {"url": "wss://ok"}
    assert len(no_sleep) == 1


@pytest.mark.anyio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_auth_failures_are_permanent(status_code: int) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"message": "Missing Access"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordPermanentError) as exc_info:
            await client.list_guild_channels(guild_id="g1")
    finally:
        await client.close()

    assert isinstance(exc_info.value, PermanentError)
    assert exc_info.value.recoverable is False
    assert exc_info.value.user_message


@pytest.mark.anyio
async def test_other_client_errors_raise_api_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Unknown Message"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordAPIError) as exc_info:
            await client.delete_channel_message(channel_id="c", message_id="m")
    finally:
        await client.close()

    assert exc_info.value.status_code == 404
    assert not isinstance(exc_info.value, (DiscordTransientError, DiscordPermanentError))
