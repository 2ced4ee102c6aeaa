"""Sessions anchor a sequence of views to one outbound message."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from typing import Any, Callable, Optional

from ..core.logging_utils import log_event
from .models import ComponentKind, InteractionEvent
from .registry import InteractionRegistration, InteractionRegistry
from .surface import (
    EPHEMERAL_FLAG,
    RESPONSE_DEFERRED_CHANNEL_MESSAGE,
    RESPONSE_DEFERRED_UPDATE_MESSAGE,
    MessagingSurface,
)
from .view import Continuation, Page, StatefulView, ViewOption

# Discord interaction tokens stop accepting edits after 15 minutes.
INTERACTION_TOKEN_TTL_SECONDS = 15 * 60

class SessionState(str, enum.Enum):
    CREATED = "created"
    RENDERED = "rendered"
    CLOSED = "closed"


class SessionClosedError(RuntimeError):
    """Raised when showing a view in a session that has been closed."""


class SessionTable:
    """Maps anchor message ids to their live session.

    Sessions older than the interaction token lifetime can no longer edit
    their anchor and are reclaimed by ``reclaim_expired``.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = INTERACTION_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, "Session"] = {}
        self._by_message: dict[str, "Session"] = {}
        self._created: dict[str, float] = {}
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._sessions)

    async def add(self, session: "Session") -> None:
        async with self._lock:
            self._sessions[session.session_id] = session
            self._created[session.session_id] = self._clock()

    async def expired(self) -> list["Session"]:
        cutoff = self._clock() - self._ttl_seconds
        async with self._lock:
            return [
                self._sessions[session_id]
                for session_id, created in self._created.items()
                if created <= cutoff and session_id in self._sessions
            ]

    async def reclaim_expired(self) -> int:
        """Forget sessions whose anchor token has lapsed; return how many."""
        stale = await self.expired()
        for session in stale:
            await session.forget()
            log_event(
                self._logger,
                logging.DEBUG,
                "interactive.session.reclaimed",
                session_id=session.session_id,
                message_id=session.message_id,
            )
        return len(stale)

    async def bind_message(self, message_id: str, session: "Session") -> None:
        async with self._lock:
            existing = self._by_message.get(message_id)
            if existing is not None and existing is not session:
                raise RuntimeError(f"message {message_id} already has a session")
            self._by_message[message_id] = session

    async def for_message(self, message_id: Optional[str]) -> Optional["Session"]:
        if not message_id:
            return None
        async with self._lock:
            return self._by_message.get(message_id)

    async def remove(self, session: "Session") -> bool:
        async with self._lock:
            removed = self._sessions.pop(session.session_id, None) is not None
            self._created.pop(session.session_id, None)
            for message_id in [
                key for key, value in self._by_message.items() if value is session
            ]:
                del self._by_message[message_id]
            return removed


class Session:
    """Shared state of one interactive conversation.

    Every ``show`` is a single edit of the anchor interaction's original
    response. Option registrations are scoped to the owner, the anchor
    channel and a custom id derived from this session and the option label.
    """

    def __init__(
        self,
        *,
        anchor: InteractionEvent,
        surface: MessagingSurface,
        registry: InteractionRegistry,
        table: SessionTable,
        context: Any = None,
        ephemeral: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.anchor = anchor
        self.surface = surface
        self.registry = registry
        self.context = context
        self.ephemeral = ephemeral
        self.session_id = uuid.uuid4().hex
        self.state = SessionState.CREATED
        self.current_view: Optional[StatefulView] = None
        self.message_id: Optional[str] = None
        self._table = table
        self._logger = logger or logging.getLogger(__name__)
        self._render_lock = asyncio.Lock()

    @classmethod
    async def begin(
        cls,
        anchor: InteractionEvent,
        *,
        surface: MessagingSurface,
        registry: InteractionRegistry,
        table: SessionTable,
        context: Any = None,
        ephemeral: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> "Session":
        """Acknowledge the command with a deferred reply and start a session."""
        session = cls(
            anchor=anchor,
            surface=surface,
            registry=registry,
            table=table,
            context=context,
            ephemeral=ephemeral,
            logger=logger,
        )
        data: dict[str, Any] = {"flags": EPHEMERAL_FLAG} if ephemeral else {}
        await surface.respond(
            anchor, {"type": RESPONSE_DEFERRED_CHANNEL_MESSAGE, "data": data}
        )
        await table.reclaim_expired()
        await table.add(session)
        return session

    @property
    def owner_id(self) -> str:
        return self.anchor.user_id

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def owns(self, event: InteractionEvent) -> bool:
        return event.user_id == self.owner_id

    async def show(self, view: StatefulView) -> None:
        view.validate()
        async with self._render_lock:
            if self.closed:
                raise SessionClosedError(f"session {self.session_id} is closed")
            await self.registry.expire(self.session_id)
            custom_ids = await self._arm(view)
            try:
                message = await self.surface.edit_original(
                    self.anchor, view.render(custom_ids)
                )
            except Exception:
                # The previous view is still on screen; keep its buttons live.
                await self.registry.expire(self.session_id)
                if self.current_view is not None:
                    await self._arm(self.current_view)
                raise
            self.current_view = view
            self.state = SessionState.RENDERED
            message_id = message.get("id") if isinstance(message, dict) else None
            if message_id and message_id != self.message_id:
                self.message_id = str(message_id)
                await self._table.bind_message(self.message_id, self)

    async def navigate(self, page: Page) -> None:
        """Render ``page`` and route its unbound options to ``page.on_select``."""
        view = await page.render(self)
        for option in view.options:
            if option.continuation is None:
                option.continuation = self._page_transition(page, option.option_key)
        await self.show(view)

    async def present(
        self,
        event: InteractionEvent,
        response: dict[str, Any],
        registrations: list[InteractionRegistration],
        *,
        replaces_view: bool,
    ) -> None:
        """Answer ``event`` with ``response`` and arm follow-up registrations.

        Used by select menus and modals. When the response replaces the
        rendered view, the view's option registrations are expired first.
        """
        async with self._render_lock:
            if self.closed:
                raise SessionClosedError(f"session {self.session_id} is closed")
            if replaces_view:
                await self.registry.expire(self.session_id)
            for registration in registrations:
                registration.session_key = self.session_id
                await self.registry.register(registration)
            try:
                await self.surface.respond(event, response)
            except Exception:
                for registration in registrations:
                    await self.registry.cancel(registration)
                raise

    async def close(self) -> None:
        async with self._render_lock:
            if self.closed:
                return
            self.state = SessionState.CLOSED
        expired = await self.registry.expire(self.session_id)
        await self._table.remove(self)
        try:
            await self.surface.delete_original(self.anchor)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "interactive.session.delete_failed",
                session_id=self.session_id,
                message_id=self.message_id,
                exc=exc,
            )
        log_event(
            self._logger,
            logging.DEBUG,
            "interactive.session.closed",
            session_id=self.session_id,
            expired_registrations=expired,
        )

    async def forget(self) -> None:
        """Tear down after the anchor message was deleted elsewhere."""
        async with self._render_lock:
            self.state = SessionState.CLOSED
        await self.registry.expire(self.session_id)
        await self._table.remove(self)

    async def _arm(self, view: StatefulView) -> list[str]:
        custom_ids = view.option_custom_ids(self.session_id)
        for option, custom_id in zip(view.options, custom_ids):
            await self.registry.register(self._option_registration(option, custom_id))
        return custom_ids

    def _option_registration(
        self, option: ViewOption, custom_id: str
    ) -> InteractionRegistration:
        continuation = option.continuation

        async def handle(event: InteractionEvent) -> None:
            if option.update:
                await self.surface.respond(
                    event, {"type": RESPONSE_DEFERRED_UPDATE_MESSAGE}
                )
            if continuation is not None:
                await continuation(event)

        return InteractionRegistration(
            handler=handle,
            component_kind=ComponentKind.BUTTON,
            user_id=self.owner_id,
            channel_id=self.anchor.channel_id,
            custom_id=custom_id,
            is_update=option.update,
            session_key=self.session_id,
        )

    def _page_transition(self, page: Page, key: str) -> Continuation:
        async def transition(event: InteractionEvent) -> None:
            next_page = await page.on_select(self, key, event)
            if next_page is not None:
                await self.navigate(next_page)

        return transition


async def route_interaction(
    event: InteractionEvent,
    *,
    sessions: SessionTable,
    registry: InteractionRegistry,
    logger: Optional[logging.Logger] = None,
) -> Optional[InteractionRegistration]:
    """Ownership check for session messages, then one-shot registry dispatch."""
    session = await sessions.for_message(event.message_id)
    if session is not None and not session.owns(event):
        log_event(
            logger or logging.getLogger(__name__),
            logging.DEBUG,
            "interactive.session.foreign_user_ignored",
            session_id=session.session_id,
            user_id=event.user_id,
        )
        return None
    return await registry.dispatch(event)
