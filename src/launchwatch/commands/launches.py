from __future__ import annotations

import logging
from typing import Optional

from ..interactive.models import InteractionEvent
from ..interactive.registry import InteractionRegistry
from ..interactive.session import Session, SessionTable
from ..interactive.surface import RESPONSE_CHANNEL_MESSAGE, MessagingSurface
from ..interactive.view import ButtonStyle, Page, StatefulView
from ..launches.models import LaunchStatus
from ..launches.snapshot import LaunchSnapshotStore
from ..notifications.messages import (
    build_launch_embed,
    build_launch_list_embed,
    default_embed,
)

LAUNCHES_PER_PAGE = 5
NO_CERTAIN_LAUNCHES = (
    "I found no upcoming launches that have been marked as certain :("
)


async def next_launch(
    event: InteractionEvent,
    *,
    snapshots: LaunchSnapshotStore,
    surface: MessagingSurface,
) -> None:
    launches = await snapshots.upcoming(status=LaunchStatus.GO)
    if not launches:
        embed = default_embed(NO_CERTAIN_LAUNCHES, success=False)
    else:
        embed = build_launch_embed(launches[0])
    await surface.respond(
        event, {"type": RESPONSE_CHANNEL_MESSAGE, "data": {"embeds": [embed]}}
    )


class LaunchListPage(Page):
    def __init__(self, snapshots: LaunchSnapshotStore, *, page: int = 0) -> None:
        self.snapshots = snapshots
        self.page = page

    async def render(self, session: Session) -> StatefulView:
        records = list(await self.snapshots.current())
        page_count = max((len(records) + LAUNCHES_PER_PAGE - 1) // LAUNCHES_PER_PAGE, 1)
        self.page = min(max(self.page, 0), page_count - 1)
        start = self.page * LAUNCHES_PER_PAGE
        view = StatefulView(
            embed=build_launch_list_embed(
                records[start : start + LAUNCHES_PER_PAGE],
                page=self.page,
                page_count=page_count,
            )
        )
        if self.page > 0:
            view.add_option("Previous", emoji="◀️")
        if self.page + 1 < page_count:
            view.add_option("Next", emoji="▶️")
        view.add_option("Close", style=ButtonStyle.DANGER)
        return view

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == "Previous":
            return LaunchListPage(self.snapshots, page=self.page - 1)
        if key == "Next":
            return LaunchListPage(self.snapshots, page=self.page + 1)
        if key == "Close":
            await session.close()
        return None


async def list_launches(
    event: InteractionEvent,
    *,
    snapshots: LaunchSnapshotStore,
    surface: MessagingSurface,
    registry: InteractionRegistry,
    sessions: SessionTable,
    logger: Optional[logging.Logger] = None,
) -> Session:
    session = await Session.begin(
        event,
        surface=surface,
        registry=registry,
        table=sessions,
        logger=logger,
    )
    await session.navigate(LaunchListPage(snapshots))
    return session
