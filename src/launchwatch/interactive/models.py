from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class InteractionValidationError(ValueError):
    """Raised when a view, select menu or modal is built with invalid state."""


class InteractionKind(str, enum.Enum):
    COMMAND = "command"
    COMPONENT = "component"
    MODAL_SUBMIT = "modal_submit"


class ComponentKind(str, enum.Enum):
    BUTTON = "button"
    SELECT = "select"


@dataclass(frozen=True)
class InteractionEvent:
    """Platform-neutral view of one incoming interaction."""

    interaction_id: str
    token: str
    kind: InteractionKind
    user_id: str
    channel_id: str
    guild_id: Optional[str] = None
    message_id: Optional[str] = None
    custom_id: Optional[str] = None
    component_kind: Optional[ComponentKind] = None
    values: tuple[str, ...] = ()
    fields: tuple[tuple[str, str], ...] = ()
    command_path: tuple[str, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)
    application_id: Optional[str] = None

    @property
    def command_name(self) -> str:
        return self.command_path[0] if self.command_path else ""

    @property
    def field_values(self) -> dict[str, str]:
        return dict(self.fields)
