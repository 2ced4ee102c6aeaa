from __future__ import annotations

from typing import Any, Optional

from ...interactive.models import ComponentKind, InteractionEvent, InteractionKind
from .constants import (
    COMPONENT_TYPE_BUTTON,
    COMPONENT_TYPE_STRING_SELECT,
    INTERACTION_TYPE_APPLICATION_COMMAND,
    INTERACTION_TYPE_MESSAGE_COMPONENT,
    INTERACTION_TYPE_MODAL_SUBMIT,
)

_INTERACTION_KINDS = {
    INTERACTION_TYPE_APPLICATION_COMMAND: InteractionKind.COMMAND,
    INTERACTION_TYPE_MESSAGE_COMPONENT: InteractionKind.COMPONENT,
    INTERACTION_TYPE_MODAL_SUBMIT: InteractionKind.MODAL_SUBMIT,
}

_COMPONENT_KINDS = {
    COMPONENT_TYPE_BUTTON: ComponentKind.BUTTON,
    COMPONENT_TYPE_STRING_SELECT: ComponentKind.SELECT,
}


def _as_id(value: object) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def _data(interaction_payload: dict[str, Any]) -> dict[str, Any]:
    data = interaction_payload.get("data")
    return data if isinstance(data, dict) else {}


def extract_command_path_and_options(
    interaction_payload: dict[str, Any],
) -> tuple[tuple[str, ...], dict[str, Any]]:
    data = _data(interaction_payload)
    root_name = data.get("name")
    if not isinstance(root_name, str) or not root_name:
        return (), {}

    path: list[str] = [root_name]
    options = data.get("options")
    current_options = options if isinstance(options, list) else []

    while current_options:
        first = current_options[0]
        if not isinstance(first, dict):
            break
        if first.get("type") not in (1, 2):
            break
        name = first.get("name")
        if isinstance(name, str) and name:
            path.append(name)
        nested = first.get("options")
        current_options = nested if isinstance(nested, list) else []

    parsed_options: dict[str, Any] = {}
    for item in current_options:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        parsed_options[name] = item.get("value")

    return tuple(path), parsed_options


def extract_user_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    member = interaction_payload.get("member")
    if isinstance(member, dict):
        member_user = member.get("user")
        if isinstance(member_user, dict):
            user_id = _as_id(member_user.get("id"))
            if user_id:
                return user_id
    user = interaction_payload.get("user")
    if isinstance(user, dict):
        return _as_id(user.get("id"))
    return None


def extract_message_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    message = interaction_payload.get("message")
    if not isinstance(message, dict):
        return None
    return _as_id(message.get("id"))


def extract_component_values(interaction_payload: dict[str, Any]) -> list[str]:
    values = _data(interaction_payload).get("values")
    if not isinstance(values, list):
        return []
    return [str(v) for v in values if isinstance(v, (str, int, float))]


def extract_modal_values(interaction_payload: dict[str, Any]) -> dict[str, str]:
    """Flatten the action rows of a modal submission into ``{custom_id: value}``."""
    values: dict[str, str] = {}
    rows = _data(interaction_payload).get("components")
    for row in rows if isinstance(rows, list) else []:
        if not isinstance(row, dict):
            continue
        components = row.get("components")
        for component in components if isinstance(components, list) else []:
            if not isinstance(component, dict):
                continue
            custom_id = _as_id(component.get("custom_id"))
            if custom_id is None:
                continue
            value = component.get("value")
            values[custom_id] = "" if value is None else str(value)
    return values


def parse_interaction_event(
    interaction_payload: dict[str, Any],
) -> Optional[InteractionEvent]:
    """Build an ``InteractionEvent`` or return None for unsupported payloads."""
    kind = _INTERACTION_KINDS.get(interaction_payload.get("type"))  # type: ignore[arg-type]
    interaction_id = _as_id(interaction_payload.get("id"))
    token = _as_id(interaction_payload.get("token"))
    user_id = extract_user_id(interaction_payload)
    channel_id = _as_id(interaction_payload.get("channel_id"))
    if kind is None or not interaction_id or not token or not user_id or not channel_id:
        return None

    data = _data(interaction_payload)
    command_path: tuple[str, ...] = ()
    options: dict[str, Any] = {}
    component_kind: Optional[ComponentKind] = None
    if kind is InteractionKind.COMMAND:
        command_path, options = extract_command_path_and_options(interaction_payload)
        if not command_path:
            return None
    elif kind is InteractionKind.COMPONENT:
        component_kind = _COMPONENT_KINDS.get(data.get("component_type"))  # type: ignore[arg-type]
        if component_kind is None:
            return None

    return InteractionEvent(
        interaction_id=interaction_id,
        token=token,
        kind=kind,
        user_id=user_id,
        channel_id=channel_id,
        guild_id=_as_id(interaction_payload.get("guild_id")),
        message_id=extract_message_id(interaction_payload),
        custom_id=_as_id(data.get("custom_id")),
        component_kind=component_kind,
        values=tuple(extract_component_values(interaction_payload)),
        fields=tuple(extract_modal_values(interaction_payload).items()),
        command_path=command_path,
        options=options,
        application_id=_as_id(interaction_payload.get("application_id")),
    )
