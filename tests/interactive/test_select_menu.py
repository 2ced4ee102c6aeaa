from __future__ import annotations

import pytest

from launchwatch.interactive.models import InteractionValidationError
from launchwatch.interactive.registry import InteractionRegistry
from launchwatch.interactive.select_menu import MAX_SELECT_MENU_OPTIONS, SelectMenu
from launchwatch.interactive.session import Session, SessionTable, route_interaction
from launchwatch.interactive.surface import (
    EPHEMERAL_FLAG,
    RESPONSE_CHANNEL_MESSAGE,
    RESPONSE_DEFERRED_UPDATE_MESSAGE,
    RESPONSE_UPDATE_MESSAGE,
)
from launchwatch.interactive.view import StatefulView


async def _noop(_key: str, _label: str) -> None:
    return None


def _options(count: int) -> dict[str, str]:
    return {f"key-{index}": f"Label {index}" for index in range(count)}


def test_build_validates_options() -> None:
    with pytest.raises(InteractionValidationError):
        SelectMenu.build(custom_id="menu", options={}, on_select=_noop)
    with pytest.raises(InteractionValidationError):
        SelectMenu.build(custom_id=" ", options=_options(1), on_select=_noop)
    with pytest.raises(InteractionValidationError, match="at most 125"):
        SelectMenu.build(
            custom_id="menu",
            options=_options(MAX_SELECT_MENU_OPTIONS + 1),
            on_select=_noop,
        )


def test_render_splits_options_into_chunks_of_25() -> None:
    menu = SelectMenu.build(
        custom_id="menu", options=_options(60), on_select=_noop, ephemeral=True
    )
    payload = menu.render()

    assert menu.chunk_custom_ids() == ["menu-0", "menu-1", "menu-2"]
    selects = [row["components"][0] for row in payload["components"]]
    assert [select["custom_id"] for select in selects] == ["menu-0", "menu-1", "menu-2"]
    assert [len(select["options"]) for select in selects] == [25, 25, 10]
    assert selects[1]["options"][0] == {
        "label": "Label 25",
        "value": "key-25",
        "default": False,
    }
    assert payload["flags"] == EPHEMERAL_FLAG
    assert menu.owns_custom_id("menu-2")
    assert not menu.owns_custom_id("menu-3")


async def _session(make_event, surface) -> tuple[Session, InteractionRegistry, SessionTable]:
    registry = InteractionRegistry()
    table = SessionTable()
    session = await Session.begin(
        make_event("command", command="notifyme"),
        surface=surface,
        registry=registry,
        table=table,
    )
    await session.show(StatefulView().add_option("Back"))
    return session, registry, table


@pytest.mark.anyio
async def test_listen_replaces_view_and_delivers_one_choice(make_event, surface) -> None:
    session, registry, table = await _session(make_event, surface)
    chosen: list[tuple[str, str]] = []

    async def on_select(key: str, label: str) -> None:
        chosen.append((key, label))

    menu = SelectMenu.build(custom_id="menu", options=_options(30), on_select=on_select)
    opener = make_event(message_id=session.message_id)
    await menu.listen(session, opener)

    assert surface.last_response["type"] == RESPONSE_UPDATE_MESSAGE
    # The rendered view's button registration was expired by the menu.
    assert len(registry) == 1

    pick = make_event(
        custom_id="menu-1",
        component_kind="select",
        values=("key-27",),
        message_id=session.message_id,
    )
    assert await route_interaction(pick, sessions=table, registry=registry) is not None
    assert chosen == [("key-27", "Label 27")]
    assert surface.last_response == {"type": RESPONSE_DEFERRED_UPDATE_MESSAGE}

    again = make_event(
        custom_id="menu-0",
        component_kind="select",
        values=("key-1",),
        message_id=session.message_id,
    )
    assert await route_interaction(again, sessions=table, registry=registry) is None
    assert chosen == [("key-27", "Label 27")]


@pytest.mark.anyio
async def test_ephemeral_menu_keeps_the_view(make_event, surface) -> None:
    session, registry, _ = await _session(make_event, surface)
    menu = SelectMenu.build(
        custom_id="menu", options=_options(3), on_select=_noop, ephemeral=True
    )

    await menu.listen(session, make_event())

    assert surface.last_response["type"] == RESPONSE_CHANNEL_MESSAGE
    assert len(registry) == 2


@pytest.mark.anyio
async def test_menu_ignores_other_users_and_foreign_chunks(make_event, surface) -> None:
    session, registry, _ = await _session(make_event, surface)
    chosen: list[str] = []

    async def on_select(key: str, _label: str) -> None:
        chosen.append(key)

    menu = SelectMenu.build(custom_id="menu", options=_options(3), on_select=on_select)
    await menu.listen(session, make_event())

    other_user = make_event(
        custom_id="menu-0", component_kind="select", values=("key-0",), user_id="user-2"
    )
    other_menu = make_event(
        custom_id="another-0", component_kind="select", values=("key-0",)
    )
    assert await registry.dispatch(other_user) is None
    assert await registry.dispatch(other_menu) is None
    assert chosen == []


@pytest.mark.anyio
async def test_unknown_value_is_dropped_and_menu_keeps_listening(
    make_event, surface
) -> None:
    session, registry, _ = await _session(make_event, surface)
    chosen: list[str] = []

    async def on_select(key: str, _label: str) -> None:
        chosen.append(key)

    menu = SelectMenu.build(custom_id="menu", options=_options(3), on_select=on_select)
    await menu.listen(session, make_event())

    forged = make_event(custom_id="menu-0", component_kind="select", values=("evil",))
    assert await registry.dispatch(forged) is not None
    assert chosen == []
    assert (forged.interaction_id, {"type": RESPONSE_DEFERRED_UPDATE_MESSAGE}) in (
        surface.responses
    )
    pending = await registry.pending(session_key=session.session_id)
    assert len(pending) == 1

    valid = make_event(custom_id="menu-0", component_kind="select", values=("key-1",))
    assert await registry.dispatch(valid) is not None
    assert chosen == ["key-1"]
    assert len(registry) == 0
