from __future__ import annotations

from typing import Any, Optional, Sequence, TypeVar

from .constants import (
    COMPONENT_TYPE_ACTION_ROW,
    COMPONENT_TYPE_BUTTON,
    COMPONENT_TYPE_STRING_SELECT,
    COMPONENT_TYPE_TEXT_INPUT,
)

DISCORD_BUTTON_STYLE_PRIMARY = 1
DISCORD_BUTTON_STYLE_SECONDARY = 2
DISCORD_BUTTON_STYLE_SUCCESS = 3
DISCORD_BUTTON_STYLE_DANGER = 4
DISCORD_SELECT_OPTION_MAX_OPTIONS = 25
DISCORD_BUTTON_LABEL_MAX = 80
DISCORD_MODAL_TITLE_MAX = 45

T = TypeVar("T")


def chunk_components(items: Sequence[T], size: int) -> list[list[T]]:
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


def build_action_row(components: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": COMPONENT_TYPE_ACTION_ROW,
        "components": components,
    }


def build_button(
    label: str,
    custom_id: str,
    *,
    style: int = DISCORD_BUTTON_STYLE_SECONDARY,
    emoji: Optional[str] = None,
    disabled: bool = False,
) -> dict[str, Any]:
    button: dict[str, Any] = {
        "type": COMPONENT_TYPE_BUTTON,
        "style": style,
        "label": label[:DISCORD_BUTTON_LABEL_MAX],
        "custom_id": custom_id,
        "disabled": disabled,
    }
    if emoji:
        button["emoji"] = {"name": emoji}
    return button


def build_select_menu(
    custom_id: str,
    options: list[dict[str, Any]],
    *,
    placeholder: Optional[str] = None,
    min_values: int = 1,
    max_values: int = 1,
    disabled: bool = False,
) -> dict[str, Any]:
    select: dict[str, Any] = {
        "type": COMPONENT_TYPE_STRING_SELECT,
        "custom_id": custom_id,
        "options": options[:DISCORD_SELECT_OPTION_MAX_OPTIONS],
        "min_values": min_values,
        "max_values": min(max_values, DISCORD_SELECT_OPTION_MAX_OPTIONS),
        "disabled": disabled,
    }
    if placeholder:
        select["placeholder"] = placeholder[:150]
    return select


def build_select_option(
    label: str,
    value: str,
    *,
    description: Optional[str] = None,
    emoji: Optional[str] = None,
    default: bool = False,
) -> dict[str, Any]:
    option: dict[str, Any] = {
        "label": label[:100],
        "value": value[:100],
        "default": default,
    }
    if description:
        option["description"] = description[:100]
    if emoji:
        option["emoji"] = {"name": emoji}
    return option


def build_text_input(
    custom_id: str,
    label: str,
    *,
    style: int = 1,
    required: bool = True,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
    placeholder: Optional[str] = None,
    value: Optional[str] = None,
) -> dict[str, Any]:
    text_input: dict[str, Any] = {
        "type": COMPONENT_TYPE_TEXT_INPUT,
        "custom_id": custom_id,
        "label": label[:45],
        "style": style,
        "required": required,
    }
    if min_length is not None:
        text_input["min_length"] = min_length
    if max_length is not None:
        text_input["max_length"] = max_length
    if placeholder:
        text_input["placeholder"] = placeholder[:100]
    if value:
        text_input["value"] = value
    return text_input


def build_modal(
    custom_id: str, title: str, text_inputs: list[dict[str, Any]]
) -> dict[str, Any]:
    # Each text input sits in its own action row.
    return {
        "custom_id": custom_id,
        "title": title[:DISCORD_MODAL_TITLE_MAX],
        "components": [build_action_row([text_input]) for text_input in text_inputs],
    }
