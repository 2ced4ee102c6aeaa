from __future__ import annotations

import abc
import enum
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from ..integrations.discord.components import (
    build_action_row,
    build_button,
    chunk_components,
)
from .models import InteractionEvent, InteractionValidationError

if TYPE_CHECKING:
    from .session import Session

BUTTONS_PER_ROW = 5
MAX_ROWS = 5
MAX_VIEW_OPTIONS = BUTTONS_PER_ROW * MAX_ROWS

Continuation = Callable[[InteractionEvent], Awaitable[None]]

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class ButtonStyle(enum.IntEnum):
    PRIMARY = 1
    SECONDARY = 2
    SUCCESS = 3
    DANGER = 4


def option_slug(label: str) -> str:
    slug = _SLUG_RE.sub("-", label.lower()).strip("-")
    return slug[:60] or "option"


@dataclass
class ViewOption:
    """One clickable control of a view.

    ``update`` options are acknowledged as a deferred message update before
    their continuation runs. Options that open a select menu or a modal set
    ``update=False`` because the continuation must send the first response.
    """

    label: str
    continuation: Optional[Continuation] = None
    style: ButtonStyle = ButtonStyle.PRIMARY
    emoji: Optional[str] = None
    key: Optional[str] = None
    update: bool = True

    @property
    def option_key(self) -> str:
        return self.key if self.key is not None else self.label


@dataclass
class StatefulView:
    embed: dict[str, Any] = field(default_factory=dict)
    content: Optional[str] = None
    options: list[ViewOption] = field(default_factory=list)

    def add_option(
        self,
        label: str,
        continuation: Optional[Continuation] = None,
        *,
        style: ButtonStyle = ButtonStyle.PRIMARY,
        emoji: Optional[str] = None,
        key: Optional[str] = None,
        update: bool = True,
    ) -> "StatefulView":
        self.options.append(
            ViewOption(
                label=label,
                continuation=continuation,
                style=style,
                emoji=emoji,
                key=key,
                update=update,
            )
        )
        return self

    def add_field(
        self,
        name: str,
        value: str,
        *,
        inline: bool = False,
        option: Optional[ViewOption] = None,
    ) -> "StatefulView":
        """Add an embed field, optionally paired with a button of its own."""
        self.embed.setdefault("fields", []).append(
            {"name": name, "value": value, "inline": inline}
        )
        if option is not None:
            self.options.append(option)
        return self

    def option_custom_ids(self, session_id: str) -> list[str]:
        return [f"{session_id}:{option_slug(option.label)}" for option in self.options]

    def validate(self) -> None:
        if len(self.options) > MAX_VIEW_OPTIONS:
            raise InteractionValidationError(
                f"a view supports at most {MAX_VIEW_OPTIONS} options, "
                f"got {len(self.options)}"
            )
        labels = [option.label for option in self.options]
        if len(set(labels)) != len(labels):
            raise InteractionValidationError("option labels must be unique per view")
        slugs = [option_slug(label) for label in labels]
        if len(set(slugs)) != len(slugs):
            raise InteractionValidationError(
                "option labels must stay distinct once normalized"
            )

    def render(self, custom_ids: list[str]) -> dict[str, Any]:
        buttons = [
            build_button(
                option.label,
                custom_id,
                style=int(option.style),
                emoji=option.emoji,
            )
            for option, custom_id in zip(self.options, custom_ids)
        ]
        payload: dict[str, Any] = {
            "content": self.content or "",
            "embeds": [self.embed] if self.embed else [],
            "components": [
                build_action_row(row)
                for row in chunk_components(buttons, BUTTONS_PER_ROW)
            ],
        }
        return payload


class Page(abc.ABC):
    """A screen in an interactive session.

    ``render`` produces the view to show. Options rendered without their own
    continuation are routed back to ``on_select`` with the option key, and a
    returned page is navigated to in the same session.
    """

    @abc.abstractmethod
    async def render(self, session: "Session") -> StatefulView:
        raise NotImplementedError

    async def on_select(
        self, session: "Session", key: str, event: InteractionEvent
    ) -> Optional["Page"]:
        return None
