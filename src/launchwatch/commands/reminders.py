"""The /notifyme and /notifychannel settings menus.

Each screen is a ``Page``. Plain navigation buttons are routed through
``on_select``; buttons that open a select menu or a modal carry their own
continuation and are registered as non-update options so the menu or modal
can be the first response to the click.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from ..core.logging_utils import log_event
from ..core.time_utils import format_duration
from ..integrations.discord.constants import (
    CHANNEL_TYPE_GUILD_ANNOUNCEMENT,
    CHANNEL_TYPE_GUILD_TEXT,
)
from ..interactive.modal import Modal, TextField
from ..interactive.models import InteractionEvent
from ..interactive.registry import InteractionRegistry
from ..interactive.select_menu import MAX_SELECT_MENU_OPTIONS, SelectMenu
from ..interactive.session import Session, SessionTable
from ..interactive.surface import (
    EPHEMERAL_FLAG,
    RESPONSE_CHANNEL_MESSAGE,
    MessagingSurface,
)
from ..interactive.time_picker import TimePickerPage
from ..interactive.view import ButtonStyle, Page, StatefulView, ViewOption
from ..launches.agencies import LAUNCH_AGENCIES
from ..notifications.messages import base_embed, default_embed
from ..notifications.settings import (
    FilterInputError,
    FilterKind,
    SubscriberId,
    SubscriberSettings,
    ToggleSetting,
    filter_from_string_input,
    regex_filter_to_string,
)
from ..notifications.store import SettingsRepository

BACK_EMOJI = "⬅️"
ADD_EMOJI = "➕"
REMOVE_EMOJI = "➖"
BACK_TO_MAIN = "Back to main menu"
BACK_TO_FILTERS = "Back to the filters page"
GUILD_ONLY_TEXT = "This command can only be ran in a server."

PAYLOAD_FILTER_FIELD = "added_payload_filter"
PAYLOAD_FILTER_MIN_LENGTH = 3
PAYLOAD_FILTER_MAX_LENGTH = 20

NOTIFIABLE_CHANNEL_TYPES = {CHANNEL_TYPE_GUILD_TEXT, CHANNEL_TYPE_GUILD_ANNOUNCEMENT}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MenuContext:
    """What every settings page needs: who is being configured and where."""

    settings: SettingsRepository
    subscriber: SubscriberId
    title: str
    agencies: dict[str, str] = field(default_factory=lambda: dict(LAUNCH_AGENCIES))

    async def load(self) -> SubscriberSettings:
        return await self.settings.get_settings(self.subscriber)


def _menu(session: Session) -> MenuContext:
    context = session.context
    if not isinstance(context, MenuContext):
        raise TypeError("settings pages need a MenuContext session context")
    return context


def _page_embed(author: str, description: str) -> dict[str, Any]:
    return base_embed(author=author, description=description)


def _back_option(label: str = BACK_TO_MAIN) -> ViewOption:
    return ViewOption(label, style=ButtonStyle.DANGER, emoji=BACK_EMOJI)


def _select_custom_id(session: Session, name: str) -> str:
    return f"{session.session_id}-{name}"


class MainMenuPage(Page):
    async def render(self, session: Session) -> StatefulView:
        menu = _menu(session)
        guild = menu.subscriber.is_guild
        description = (
            f"Settings for <#{menu.subscriber.channel_id}>" if guild else None
        )
        view = StatefulView(embed=base_embed(author=menu.title, description=description))
        view.add_field(
            "Reminders",
            "Set at which times you want to get launch reminders",
            option=ViewOption("Reminders", emoji="⏰"),
        )
        view.add_field(
            "Filters",
            "Set filters for which launches you do and don't want to see",
            option=ViewOption("Filters", emoji="🔍"),
        )
        if guild:
            view.add_field(
                "Mentions",
                "Set which roles should be mentioned when posting reminders",
                option=ViewOption("Mentions", emoji="🔔"),
            )
        view.add_field(
            "Other",
            "Enable other notifications",
            option=ViewOption("Other", emoji="🛎"),
        )
        if guild:
            view.add_field(
                "Close",
                "Close this menu",
                option=ViewOption("Close", style=ButtonStyle.DANGER, emoji="❌"),
            )
        return view

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == "Close":
            await session.close()
            return None
        pages: dict[str, Callable[[], Page]] = {
            "Reminders": RemindersPage,
            "Filters": FiltersPage,
            "Mentions": MentionsPage,
            "Other": OtherPage,
        }
        factory = pages.get(key)
        return factory() if factory is not None else None


class RemindersPage(Page):
    async def render(self, session: Session) -> StatefulView:
        menu = _menu(session)
        reminders = await menu.settings.get_reminders(menu.subscriber)
        if reminders:
            lines = ["The following reminders have been set:"]
            lines.extend(f"- {format_duration(reminder.duration)}" for reminder in reminders)
            description = "\n".join(lines)
        else:
            description = "No reminders have been set yet"
        view = StatefulView(embed=_page_embed("Launch Reminders", description))
        view.add_option("Add reminder", emoji=ADD_EMOJI)
        if reminders:
            view.add_option("Remove reminder", emoji=REMOVE_EMOJI)
        view.options.append(_back_option())
        return view

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        menu = _menu(session)
        if key == "Add reminder":

            async def add(duration: timedelta) -> Page:
                if duration > timedelta(0):
                    await menu.settings.add_reminder(menu.subscriber, duration)
                return RemindersPage()

            return TimePickerPage(add, title="Add Launch Reminder")
        if key == "Remove reminder":

            async def remove(duration: timedelta) -> Page:
                if duration > timedelta(0):
                    await menu.settings.remove_reminder(menu.subscriber, duration)
                return RemindersPage()

            return TimePickerPage(remove, title="Remove Launch Reminder")
        if key == BACK_TO_MAIN:
            return MainMenuPage()
        return None


class FiltersPage(Page):
    async def render(self, session: Session) -> StatefulView:
        view = StatefulView(embed=_page_embed("Filters", "Choose a kind of filter to edit"))
        view.add_field(
            "Filters",
            "Set which agencies to filter out of launch reminders, making you not "
            "get any reminders for these agencies again",
            option=ViewOption("Disallow Filters", emoji="⛔"),
        )
        view.add_field(
            "Allow Filters",
            "Set which agencies to filter launch reminders for, making you get "
            "**only** reminders for these agencies",
            option=ViewOption("Allow Filters", emoji="🔍"),
        )
        view.add_field(
            "Payload Filters",
            "Add word or regex filters to filter out launches with specific payloads",
            option=ViewOption("Payload Filters", emoji="🛰"),
        )
        view.options.append(_back_option())
        return view

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == "Disallow Filters":
            return AgencyFilterPage(FilterKind.DENY)
        if key == "Allow Filters":
            return AgencyFilterPage(FilterKind.ALLOW)
        if key == "Payload Filters":
            return PayloadFilterPage()
        if key == BACK_TO_MAIN:
            return MainMenuPage()
        return None


@dataclass(frozen=True)
class _AgencyFilterText:
    author: str
    listed: str
    empty: str
    add_label: str
    remove_label: str
    add_prompt: str
    remove_prompt: str


_AGENCY_FILTER_TEXT = {
    FilterKind.DENY: _AgencyFilterText(
        author="Launch Agency Disallow Filters",
        listed="The following agency filters have been set:",
        empty="No agency filters have been set yet",
        add_label="Add filter",
        remove_label="Remove filter",
        add_prompt="Select the name of the agency you do not want to receive reminders for",
        remove_prompt="Select the name of the agency you want to receive reminders for again",
    ),
    FilterKind.ALLOW: _AgencyFilterText(
        author="Launch Agency Allow Filters",
        listed="The following agency allow filters have been set:",
        empty="No agency allow filters have been set yet",
        add_label="Add allow filter",
        remove_label="Remove allow filter",
        add_prompt="Select the name of the agency you specifically want to get reminders for",
        remove_prompt=(
            "Select the name of the agency you do not want to receive reminders for again"
        ),
    ),
}


class AgencyFilterPage(Page):
    """Deny or allow filters keyed by launch agency."""

    def __init__(self, kind: FilterKind) -> None:
        if kind not in _AGENCY_FILTER_TEXT:
            raise ValueError(f"{kind.value} is not an agency filter kind")
        self.kind = kind

    async def render(self, session: Session) -> StatefulView:
        menu = _menu(session)
        text = _AGENCY_FILTER_TEXT[self.kind]
        current = (await menu.load()).filter_values(self.kind)
        if current:
            lines = [text.listed]
            lines.extend(
                f"`{menu.agencies.get(key, 'unknown agency')}`" for key in current
            )
            description = "\n".join(lines)
        else:
            description = text.empty
        view = StatefulView(embed=_page_embed(text.author, description))

        addable = {key: name for key, name in menu.agencies.items() if key not in current}
        removable = {key: name for key, name in menu.agencies.items() if key in current}
        if addable:
            view.add_option(
                text.add_label,
                self._open_menu(session, addable, text.add_prompt, add=True),
                emoji=ADD_EMOJI,
                update=False,
            )
        if removable:
            view.add_option(
                text.remove_label,
                self._open_menu(session, removable, text.remove_prompt, add=False),
                emoji=REMOVE_EMOJI,
                update=False,
            )
        view.options.append(_back_option(BACK_TO_FILTERS))
        return view

    def _open_menu(
        self, session: Session, options: dict[str, str], prompt: str, *, add: bool
    ) -> Callable[[InteractionEvent], Awaitable[None]]:
        menu = _menu(session)
        action = "add" if add else "remove"

        async def on_choice(key: str, _label: str) -> None:
            if key in menu.agencies:
                if add:
                    await menu.settings.add_filter(menu.subscriber, self.kind, key)
                else:
                    await menu.settings.remove_filter(menu.subscriber, self.kind, key)
            await session.navigate(AgencyFilterPage(self.kind))

        async def open_menu(event: InteractionEvent) -> None:
            select = SelectMenu.build(
                custom_id=_select_custom_id(session, f"{action}-{self.kind.value}"),
                options=options,
                on_select=on_choice,
                description=prompt,
                user_id=session.owner_id,
            )
            await select.listen(session, event)

        return open_menu

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == BACK_TO_FILTERS:
            return FiltersPage()
        return None


class PayloadFilterPage(Page):
    def __init__(self, *, notice: Optional[str] = None) -> None:
        self.notice = notice

    async def render(self, session: Session) -> StatefulView:
        menu = _menu(session)
        current = (await menu.load()).payload_filters
        if current:
            lines = ["The following payload filters have been added:"]
            lines.extend(f"`{regex_filter_to_string(pattern)}`" for pattern in current)
            description = "\n".join(lines)
        else:
            description = "No payload filters have been added yet"
        if self.notice:
            description = f"**{self.notice}**\n\n{description}"
        view = StatefulView(embed=_page_embed("Launch Payload Filters", description))
        view.add_option(
            "Add payload filter",
            self._open_modal(session),
            emoji=ADD_EMOJI,
            update=False,
        )
        if current:
            view.add_option(
                "Remove payload filter",
                self._open_remove_menu(session, current),
                emoji=REMOVE_EMOJI,
                update=False,
            )
        view.options.append(_back_option(BACK_TO_FILTERS))
        return view

    def _open_modal(self, session: Session) -> Callable[[InteractionEvent], Awaitable[None]]:
        menu = _menu(session)

        async def on_submit(values: dict[str, str]) -> None:
            notice = None
            try:
                pattern = filter_from_string_input(values.get(PAYLOAD_FILTER_FIELD, ""))
            except FilterInputError as exc:
                notice = str(exc)
            else:
                await menu.settings.add_filter(menu.subscriber, FilterKind.PAYLOAD, pattern)
            await session.navigate(PayloadFilterPage(notice=notice))

        async def open_modal(event: InteractionEvent) -> None:
            modal = Modal.build(
                custom_id=_select_custom_id(session, "add-payload-filter"),
                title="Payload filter modal",
                fields=[
                    TextField(
                        custom_id=PAYLOAD_FILTER_FIELD,
                        label="New payload filter",
                        min_length=PAYLOAD_FILTER_MIN_LENGTH,
                        max_length=PAYLOAD_FILTER_MAX_LENGTH,
                        placeholder="Put in a word or regex to filter out payloads",
                    )
                ],
                on_submit=on_submit,
            )
            await modal.listen(session, event)

        return open_modal

    def _open_remove_menu(
        self, session: Session, current: tuple[str, ...]
    ) -> Callable[[InteractionEvent], Awaitable[None]]:
        menu = _menu(session)
        options = {
            pattern: regex_filter_to_string(pattern)
            for pattern in current[:MAX_SELECT_MENU_OPTIONS]
        }

        async def on_choice(pattern: str, _label: str) -> None:
            await menu.settings.remove_filter(menu.subscriber, FilterKind.PAYLOAD, pattern)
            await session.navigate(PayloadFilterPage())

        async def open_menu(event: InteractionEvent) -> None:
            select = SelectMenu.build(
                custom_id=_select_custom_id(session, "remove-payload-filter"),
                options=options,
                on_select=on_choice,
                description="Select payload filter you want to remove",
                user_id=session.owner_id,
            )
            await select.listen(session, event)

        return open_menu

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == BACK_TO_FILTERS:
            return FiltersPage()
        return None


def _role_options(
    roles: list[dict[str, Any]], *, include: Optional[set[str]] = None, exclude: set[str]
) -> dict[str, str]:
    options: dict[str, str] = {}
    for role in roles:
        role_id = str(role.get("id") or "")
        if not role_id or role_id in exclude:
            continue
        if include is not None and role_id not in include:
            continue
        options[role_id] = str(role.get("name") or role_id)
        if len(options) >= MAX_SELECT_MENU_OPTIONS:
            break
    return options


class MentionsPage(Page):
    async def render(self, session: Session) -> StatefulView:
        menu = _menu(session)
        mentions = (await menu.load()).mentions
        if mentions:
            lines = ["The following roles have been set to be mentioned:"]
            lines.extend(f"<@&{role_id}>" for role_id in mentions)
            description = "\n".join(lines)
        else:
            description = "No role mentions have been set yet"
        view = StatefulView(embed=_page_embed("Role Mentions", description))
        view.add_option(
            "Add mention",
            self._open_role_menu(session, add=True, current=set(mentions)),
            emoji=ADD_EMOJI,
            update=False,
        )
        if mentions:
            view.add_option(
                "Remove mention",
                self._open_role_menu(session, add=False, current=set(mentions)),
                emoji=REMOVE_EMOJI,
                update=False,
            )
        view.options.append(_back_option())
        return view

    def _open_role_menu(
        self, session: Session, *, add: bool, current: set[str]
    ) -> Callable[[InteractionEvent], Awaitable[None]]:
        menu = _menu(session)

        async def on_choice(role_id: str, _label: str) -> None:
            if add:
                await menu.settings.add_mention(menu.subscriber, role_id)
            else:
                await menu.settings.remove_mention(menu.subscriber, role_id)
            await session.navigate(MentionsPage())

        async def open_menu(event: InteractionEvent) -> None:
            roles = await session.surface.list_guild_roles(str(menu.subscriber.guild_id))
            if add:
                options = _role_options(roles, exclude=current)
            else:
                options = _role_options(roles, include=current, exclude=set())
            if not options:
                await _respond_nothing_to_select(session, event, "No roles to select")
                return
            select = SelectMenu.build(
                custom_id=_select_custom_id(session, "role-select"),
                options=options,
                on_select=on_choice,
                description="Select a role",
                user_id=session.owner_id,
            )
            await select.listen(session, event)

        return open_menu

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == BACK_TO_MAIN:
            return MainMenuPage()
        return None


async def _respond_nothing_to_select(
    session: Session, event: InteractionEvent, text: str
) -> None:
    await session.surface.respond(
        event,
        {
            "type": RESPONSE_CHANNEL_MESSAGE,
            "data": {
                "embeds": [default_embed(text, success=False)],
                "flags": EPHEMERAL_FLAG,
            },
        },
    )


def _enabled_text(value: bool) -> str:
    return "enabled" if value else "disabled"


class OtherPage(Page):
    async def render(self, session: Session) -> StatefulView:
        menu = _menu(session)
        settings = await menu.load()
        guild = menu.subscriber.is_guild
        description = None
        if guild:
            if settings.notifications_channel:
                description = (
                    "\nScrub and outcome notifications will be posted in: "
                    f"<#{settings.notifications_channel}>"
                )
            else:
                description = "\n**warning:** no notifications channel has been set yet!"
        view = StatefulView(embed=base_embed(author="Other Options", description=description))
        view.add_field(
            "Toggle Scrub Notifications",
            "Toggle scrub notifications on and off\nThese notifications notify you "
            "when a launch gets delayed.\nThis is currently "
            f"**{_enabled_text(settings.scrub_notifications)}**",
            option=ViewOption("Toggle Scrubs", key=ToggleSetting.SCRUB.value),
        )
        view.add_field(
            "Toggle Outcome Notifications",
            "Toggle outcome notifications on and off\nThese notifications notify you "
            "about the outcome of a launch.\nThis is currently "
            f"**{_enabled_text(settings.outcome_notifications)}**",
            option=ViewOption("Toggle Outcomes", key=ToggleSetting.OUTCOME.value),
        )
        if guild:
            view.add_field(
                "Toggle Mentions",
                "Toggle mentions for scrub and outcome notifications.\nThis is "
                f"currently **{_enabled_text(settings.mention_others)}**",
                option=ViewOption(
                    "Toggle Mentions", key=ToggleSetting.MENTION_OTHERS.value
                ),
            )
            view.add_field(
                "Set Notification Channel",
                "Set the channel to receive scrub and outcome notifications in, "
                "this can only be one per server",
                option=ViewOption(
                    "Set Notification Channel",
                    self._open_channel_menu(session),
                    update=False,
                ),
            )
        view.options.append(_back_option())
        return view

    def _open_channel_menu(
        self, session: Session
    ) -> Callable[[InteractionEvent], Awaitable[None]]:
        menu = _menu(session)

        async def on_choice(channel_id: str, _label: str) -> None:
            await menu.settings.set_notification_channel(menu.subscriber, channel_id)
            await session.navigate(OtherPage())

        async def open_menu(event: InteractionEvent) -> None:
            channels = await session.surface.list_guild_channels(
                str(menu.subscriber.guild_id)
            )
            options: dict[str, str] = {}
            for channel in channels:
                if channel.get("type") not in NOTIFIABLE_CHANNEL_TYPES:
                    continue
                channel_id = str(channel.get("id") or "")
                if channel_id:
                    options[channel_id] = f"#{channel.get('name') or channel_id}"
                if len(options) >= MAX_SELECT_MENU_OPTIONS:
                    break
            if not options:
                await _respond_nothing_to_select(
                    session, event, "No text channels to select"
                )
                return
            select = SelectMenu.build(
                custom_id=_select_custom_id(session, "channel-select"),
                options=options,
                on_select=on_choice,
                description="Select a channel",
                user_id=session.owner_id,
            )
            await select.listen(session, event)

        return open_menu

    async def on_select(
        self, session: Session, key: str, event: InteractionEvent
    ) -> Optional[Page]:
        if key == BACK_TO_MAIN:
            return MainMenuPage()
        toggles = {setting.value: setting for setting in ToggleSetting}
        setting = toggles.get(key)
        if setting is None:
            return None
        menu = _menu(session)
        new_value = await menu.settings.toggle_setting(menu.subscriber, setting)
        log_event(
            logger,
            logging.DEBUG,
            "settings.toggle.changed",
            setting=setting.value,
            enabled=new_value,
            subscriber=menu.subscriber.settings_query,
        )
        return OtherPage()


async def _open_menu(
    event: InteractionEvent,
    *,
    context: MenuContext,
    ephemeral: bool,
    surface: MessagingSurface,
    registry: InteractionRegistry,
    sessions: SessionTable,
    logger: Optional[logging.Logger],
) -> Session:
    session = await Session.begin(
        event,
        surface=surface,
        registry=registry,
        table=sessions,
        context=context,
        ephemeral=ephemeral,
        logger=logger,
    )
    await session.navigate(MainMenuPage())
    return session


async def notify_me(
    event: InteractionEvent,
    *,
    settings: SettingsRepository,
    surface: MessagingSurface,
    registry: InteractionRegistry,
    sessions: SessionTable,
    logger: Optional[logging.Logger] = None,
) -> Session:
    """Open the DM notification settings for the invoking user."""
    context = MenuContext(
        settings=settings,
        subscriber=SubscriberId.for_user(event.user_id),
        title="Launch Reminder Settings for your DMs",
    )
    return await _open_menu(
        event,
        context=context,
        ephemeral=True,
        surface=surface,
        registry=registry,
        sessions=sessions,
        logger=logger,
    )


async def notify_channel(
    event: InteractionEvent,
    *,
    settings: SettingsRepository,
    surface: MessagingSurface,
    registry: InteractionRegistry,
    sessions: SessionTable,
    logger: Optional[logging.Logger] = None,
) -> Optional[Session]:
    """Open the settings of a guild channel; refuses outside a guild."""
    if not event.guild_id:
        await surface.respond(
            event,
            {
                "type": RESPONSE_CHANNEL_MESSAGE,
                "data": {
                    "embeds": [default_embed(GUILD_ONLY_TEXT, success=False)],
                    "flags": EPHEMERAL_FLAG,
                },
            },
        )
        return None
    target = event.options.get("target_channel")
    channel_id = str(target).strip() if target else event.channel_id
    context = MenuContext(
        settings=settings,
        subscriber=SubscriberId.for_channel(event.guild_id, channel_id or event.channel_id),
        title="Launch Reminder Settings for this channel",
    )
    return await _open_menu(
        event,
        context=context,
        ephemeral=False,
        surface=surface,
        registry=registry,
        sessions=sessions,
        logger=logger,
    )
