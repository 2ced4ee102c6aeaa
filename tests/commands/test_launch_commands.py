from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from launchwatch.commands.launches import (
    LAUNCHES_PER_PAGE,
    NO_CERTAIN_LAUNCHES,
    list_launches,
    next_launch,
)
from launchwatch.interactive.registry import InteractionRegistry
from launchwatch.interactive.session import SessionTable, route_interaction
from launchwatch.interactive.surface import RESPONSE_CHANNEL_MESSAGE
from launchwatch.launches.models import LaunchRecord, LaunchStatus
from launchwatch.launches.snapshot import LaunchSnapshotStore

FAR_FUTURE = datetime(2099, 1, 1, tzinfo=timezone.utc)


def _record(index: int, status: LaunchStatus = LaunchStatus.GO) -> LaunchRecord:
    return LaunchRecord(
        ll_id=f"ll-{index}",
        launch_name=f"Falcon 9 | Mission {index}",
        status=status,
        net=FAR_FUTURE + timedelta(hours=index),
        payload=f"Mission {index}",
        vehicle="Falcon 9",
        location="SLC-40",
        lsp="SpaceX",
    )


async def _snapshots(*records: LaunchRecord) -> LaunchSnapshotStore:
    snapshots = LaunchSnapshotStore()
    await snapshots.compare_and_replace(records)
    return snapshots


@pytest.mark.anyio
async def test_next_launch_shows_first_go_launch(make_event, surface) -> None:
    snapshots = await _snapshots(
        _record(0, LaunchStatus.TBD), _record(2), _record(1)
    )

    await next_launch(make_event("command", command="nextlaunch"), snapshots=snapshots, surface=surface)

    response = surface.last_response
    assert response["type"] == RESPONSE_CHANNEL_MESSAGE
    (embed,) = response["data"]["embeds"]
    assert "**Payload:** Mission 1" in embed["description"]
    assert embed["title"].startswith("Falcon 9")


@pytest.mark.anyio
async def test_next_launch_without_go_launches(make_event, surface) -> None:
    snapshots = await _snapshots(_record(0, LaunchStatus.TBD))

    await next_launch(make_event("command", command="nextlaunch"), snapshots=snapshots, surface=surface)

    (embed,) = surface.last_response["data"]["embeds"]
    assert embed["description"] == NO_CERTAIN_LAUNCHES


@pytest.mark.anyio
async def test_launch_list_pages_forward_and_back(make_event, surface) -> None:
    snapshots = await _snapshots(*(_record(i) for i in range(LAUNCHES_PER_PAGE + 2)))
    registry = InteractionRegistry()
    table = SessionTable()

    session = await list_launches(
        make_event("command", command="launches"),
        snapshots=snapshots,
        surface=surface,
        registry=registry,
        sessions=table,
    )

    first = surface.last_edit["embeds"][0]
    assert len(first["fields"]) == LAUNCHES_PER_PAGE
    assert first["footer"]["text"] == "Page 1 of 2"
    assert list(surface.button_ids()) == ["Next", "Close"]

    await route_interaction(
        make_event(custom_id=surface.button_ids()["Next"], message_id=session.message_id),
        sessions=table,
        registry=registry,
    )

    second = surface.last_edit["embeds"][0]
    assert len(second["fields"]) == 2
    assert second["fields"][0]["name"].startswith(f"{LAUNCHES_PER_PAGE + 1}:")
    assert list(surface.button_ids()) == ["Previous", "Close"]

    await route_interaction(
        make_event(
            custom_id=surface.button_ids()["Previous"], message_id=session.message_id
        ),
        sessions=table,
        registry=registry,
    )

    assert surface.last_edit["embeds"][0]["footer"]["text"] == "Page 1 of 2"


@pytest.mark.anyio
async def test_launch_list_close_deletes_message(make_event, surface) -> None:
    snapshots = await _snapshots()
    registry = InteractionRegistry()
    table = SessionTable()
    anchor = make_event("command", command="launches")

    session = await list_launches(
        anchor, snapshots=snapshots, surface=surface, registry=registry, sessions=table
    )

    assert "no upcoming launches" in surface.last_edit["embeds"][0]["description"]
    assert list(surface.button_ids()) == ["Close"]

    await route_interaction(
        make_event(custom_id=surface.button_ids()["Close"], message_id=session.message_id),
        sessions=table,
        registry=registry,
    )

    assert session.closed
    assert surface.deleted == [anchor.token]
    assert len(table) == 0
