"""One-shot routing of interaction events to registered handlers."""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..core.logging_utils import log_event
from .models import (
    ComponentKind,
    InteractionEvent,
    InteractionKind,
    InteractionValidationError,
)

Handler = Callable[[InteractionEvent], Awaitable[None]]
Predicate = Callable[[InteractionEvent], Awaitable[bool]]


class RegistrationState(str, enum.Enum):
    PENDING = "pending"
    FIRED = "fired"
    EXPIRED = "expired"


@dataclass(eq=False)
class InteractionRegistration:
    """A pending handler plus the constraints an event must satisfy.

    Unset constraints match anything. ``session_key`` ties the registration
    to a session so it can be expired when that session moves on.
    """

    handler: Handler
    kind: Optional[InteractionKind] = None
    user_id: Optional[str] = None
    channel_id: Optional[str] = None
    custom_id: Optional[str] = None
    component_kind: Optional[ComponentKind] = None
    predicate: Optional[Predicate] = None
    is_update: bool = True
    session_key: Optional[str] = None
    registration_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: RegistrationState = RegistrationState.PENDING

    def __post_init__(self) -> None:
        if self.component_kind is not None:
            if self.kind is None:
                self.kind = InteractionKind.COMPONENT
            elif self.kind is not InteractionKind.COMPONENT:
                raise InteractionValidationError(
                    "component_kind requires the component interaction kind"
                )
        if self.kind is None:
            raise InteractionValidationError("registration needs an interaction kind")

    def matches(self, event: InteractionEvent) -> bool:
        """Structural checks only; the async predicate runs separately."""
        if self.state is not RegistrationState.PENDING:
            return False
        if event.kind is not self.kind:
            return False
        if self.user_id is not None and event.user_id != self.user_id:
            return False
        if self.channel_id is not None and event.channel_id != self.channel_id:
            return False
        if self.kind is InteractionKind.COMPONENT:
            if (
                self.component_kind is not None
                and event.component_kind is not self.component_kind
            ):
                return False
        if self.custom_id is not None and event.custom_id != self.custom_id:
            return False
        return True


class InteractionRegistry:
    """Shared table of pending registrations.

    The lock guards membership only. Predicates and handlers always run with
    the lock released, so a handler may register follow-up handlers.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._registrations: list[InteractionRegistration] = []

    def __len__(self) -> int:
        return len(self._registrations)

    async def register(
        self, registration: InteractionRegistration
    ) -> InteractionRegistration:
        async with self._lock:
            self._registrations.append(registration)
        return registration

    async def pending(
        self, *, session_key: Optional[str] = None
    ) -> list[InteractionRegistration]:
        async with self._lock:
            return [
                registration
                for registration in self._registrations
                if session_key is None or registration.session_key == session_key
            ]

    async def dispatch(
        self, event: InteractionEvent
    ) -> Optional[InteractionRegistration]:
        """Fire the first matching registration, if any, and return it."""
        async with self._lock:
            candidates = [
                registration
                for registration in self._registrations
                if registration.matches(event)
            ]

        for registration in candidates:
            if registration.predicate is not None:
                try:
                    accepted = await registration.predicate(event)
                except Exception as exc:
                    log_event(
                        self._logger,
                        logging.WARNING,
                        "interactive.registry.predicate_failed",
                        registration_id=registration.registration_id,
                        custom_id=event.custom_id,
                        exc=exc,
                    )
                    continue
                if not accepted:
                    continue

            async with self._lock:
                # Another dispatch may have claimed or expired it meanwhile.
                if registration.state is not RegistrationState.PENDING:
                    continue
                registration.state = RegistrationState.FIRED
                self._discard(registration)

            try:
                await registration.handler(event)
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "interactive.registry.handler_failed",
                    registration_id=registration.registration_id,
                    custom_id=event.custom_id,
                    user_id=event.user_id,
                    exc=exc,
                )
            return registration

        log_event(
            self._logger,
            logging.DEBUG,
            "interactive.registry.unmatched",
            kind=event.kind,
            custom_id=event.custom_id,
        )
        return None

    async def expire(self, session_key: str) -> int:
        """Expire every pending registration tied to ``session_key``."""
        async with self._lock:
            stale = [
                registration
                for registration in self._registrations
                if registration.session_key == session_key
            ]
            for registration in stale:
                registration.state = RegistrationState.EXPIRED
                self._discard(registration)
        return len(stale)

    async def cancel(self, registration: InteractionRegistration) -> bool:
        async with self._lock:
            if registration.state is not RegistrationState.PENDING:
                return False
            registration.state = RegistrationState.EXPIRED
            self._discard(registration)
        return True

    async def clear(self) -> None:
        async with self._lock:
            for registration in self._registrations:
                registration.state = RegistrationState.EXPIRED
            self._registrations.clear()

    def _discard(self, registration: InteractionRegistration) -> None:
        try:
            self._registrations.remove(registration)
        except ValueError:
            pass
