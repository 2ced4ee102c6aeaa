from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..core.logging_utils import log_event
from ..integrations.discord.components import (
    DISCORD_SELECT_OPTION_MAX_OPTIONS,
    build_action_row,
    build_select_menu,
    build_select_option,
)
from .models import ComponentKind, InteractionEvent, InteractionValidationError
from .registry import InteractionRegistration
from .session import Session
from .surface import (
    EPHEMERAL_FLAG,
    RESPONSE_CHANNEL_MESSAGE,
    RESPONSE_DEFERRED_UPDATE_MESSAGE,
    RESPONSE_UPDATE_MESSAGE,
)

MAX_SELECT_MENU_OPTIONS = 125
DEFAULT_SELECT_DESCRIPTION = "Select an option"

logger = logging.getLogger(__name__)

OnSelect = Callable[[str, str], Awaitable[None]]


@dataclass(frozen=True)
class SelectMenu:
    """Single choice out of up to 125 ``key -> label`` options.

    Options are split into select controls of 25, one per row, with custom
    ids ``"{custom_id}-{index}"``; the registration matches any of them.
    """

    custom_id: str
    options: tuple[tuple[str, str], ...]
    on_select: OnSelect
    description: str = DEFAULT_SELECT_DESCRIPTION
    user_id: Optional[str] = None
    ephemeral: bool = False

    @classmethod
    def build(
        cls,
        *,
        custom_id: str,
        options: dict[str, str],
        on_select: OnSelect,
        description: str = DEFAULT_SELECT_DESCRIPTION,
        user_id: Optional[str] = None,
        ephemeral: bool = False,
    ) -> "SelectMenu":
        if not custom_id or not custom_id.strip():
            raise InteractionValidationError("select menu needs a custom_id")
        if not options:
            raise InteractionValidationError("select menu needs at least one option")
        if len(options) > MAX_SELECT_MENU_OPTIONS:
            raise InteractionValidationError(
                f"select menu supports at most {MAX_SELECT_MENU_OPTIONS} options, "
                f"got {len(options)}"
            )
        return cls(
            custom_id=custom_id.strip(),
            options=tuple((str(key), str(label)) for key, label in options.items()),
            on_select=on_select,
            description=description or DEFAULT_SELECT_DESCRIPTION,
            user_id=user_id,
            ephemeral=ephemeral,
        )

    @property
    def chunk_count(self) -> int:
        size = DISCORD_SELECT_OPTION_MAX_OPTIONS
        return (len(self.options) + size - 1) // size

    def chunk_custom_ids(self) -> list[str]:
        return [f"{self.custom_id}-{index}" for index in range(self.chunk_count)]

    def owns_custom_id(self, custom_id: Optional[str]) -> bool:
        return custom_id in self.chunk_custom_ids()

    def label_for(self, key: str) -> Optional[str]:
        for option_key, label in self.options:
            if option_key == key:
                return label
        return None

    def render(self) -> dict[str, Any]:
        size = DISCORD_SELECT_OPTION_MAX_OPTIONS
        rows = []
        for index, chunk_id in enumerate(self.chunk_custom_ids()):
            chunk = self.options[index * size : (index + 1) * size]
            rows.append(
                build_action_row(
                    [
                        build_select_menu(
                            chunk_id,
                            [build_select_option(label, key) for key, label in chunk],
                            placeholder=self.description,
                        )
                    ]
                )
            )
        data: dict[str, Any] = {
            "content": self.description,
            "embeds": [],
            "components": rows,
        }
        if self.ephemeral:
            data["flags"] = EPHEMERAL_FLAG
        return data

    async def listen(self, session: Session, event: InteractionEvent) -> None:
        """Show the menu in response to ``event`` and wait for one choice.

        ``event`` must not have been acknowledged yet. A non-ephemeral menu
        replaces the session's view in place; an ephemeral one is sent as a
        separate message only the user can see. A value outside the menu's
        options is dropped and the menu keeps listening.
        """
        response_type = (
            RESPONSE_CHANNEL_MESSAGE if self.ephemeral else RESPONSE_UPDATE_MESSAGE
        )
        await session.present(
            event,
            {"type": response_type, "data": self.render()},
            [self._registration(session, event.channel_id)],
            replaces_view=not self.ephemeral,
        )

    def _registration(
        self, session: Session, channel_id: Optional[str]
    ) -> InteractionRegistration:
        async def matches_chunk(incoming: InteractionEvent) -> bool:
            return self.owns_custom_id(incoming.custom_id)

        async def handle(incoming: InteractionEvent) -> None:
            await session.surface.respond(
                incoming, {"type": RESPONSE_DEFERRED_UPDATE_MESSAGE}
            )
            key = incoming.values[0] if incoming.values else ""
            label = self.label_for(key)
            if label is None:
                log_event(
                    logger,
                    logging.WARNING,
                    "interactive.select_menu.unknown_value",
                    custom_id=self.custom_id,
                    value=key,
                    user_id=incoming.user_id,
                )
                if session.closed:
                    return
                registration = self._registration(session, channel_id)
                registration.session_key = session.session_id
                await session.registry.register(registration)
                return
            await self.on_select(key, label)

        return InteractionRegistration(
            handler=handle,
            component_kind=ComponentKind.SELECT,
            user_id=self.user_id or session.owner_id,
            channel_id=channel_id,
            predicate=matches_chunk,
        )
