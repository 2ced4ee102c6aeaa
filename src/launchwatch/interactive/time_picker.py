from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from ..core.time_utils import format_duration
from ..notifications.messages import base_embed
from .models import InteractionEvent
from .view import ButtonStyle, Page, StatefulView

if TYPE_CHECKING:
    from .session import Session

TIME_STEPS: tuple[tuple[str, timedelta], ...] = (
    ("1 day", timedelta(days=1)),
    ("6 hours", timedelta(hours=6)),
    ("1 hour", timedelta(hours=1)),
    ("15 minutes", timedelta(minutes=15)),
    ("5 minutes", timedelta(minutes=5)),
)
SUBMIT_LABEL = "Submit"
ADD_EMOJI = "➕"

OnDuration = Callable[[timedelta], Awaitable[Optional[Page]]]


class TimePickerPage(Page):
    """Build up a duration by clicking step buttons, then submit it."""

    def __init__(
        self,
        on_submit: OnDuration,
        *,
        duration: timedelta = timedelta(0),
        title: str = "Launch Reminders",
    ) -> None:
        self.on_submit = on_submit
        self.duration = duration
        self.title = title

    async def render(self, session: "Session") -> StatefulView:
        if self.duration > timedelta(0):
            description = (
                f"Setting a reminder for {format_duration(self.duration)} "
                "before the moment of launch."
            )
        else:
            description = "Please start specifying a duration using the buttons below:"
        view = StatefulView(embed=base_embed(author=self.title, description=description))
        for label, _ in TIME_STEPS:
            view.add_option(label, emoji=ADD_EMOJI)
        view.add_option(SUBMIT_LABEL, style=ButtonStyle.SUCCESS)
        return view

    async def on_select(
        self, session: "Session", key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == SUBMIT_LABEL:
            return await self.on_submit(self.duration)
        for label, step in TIME_STEPS:
            if key == label:
                return TimePickerPage(
                    self.on_submit, duration=self.duration + step, title=self.title
                )
        return None
