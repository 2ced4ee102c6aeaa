from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from ..core.time_utils import discord_timestamp, format_duration, utc_now
from ..launches.models import LaunchRecord, LaunchStatus, status_color

DEFAULT_COLOR = 16750899
DEFAULT_ICON = "https://i.imgur.com/ruFc9fc.png"

EMBED_DESCRIPTION_LIMIT = 4096
EMBED_FIELD_VALUE_LIMIT = 1024


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def base_embed(
    *,
    author: Optional[str] = None,
    description: Optional[str] = None,
    color: int = DEFAULT_COLOR,
    timestamp: Optional[datetime] = None,
) -> dict[str, Any]:
    embed: dict[str, Any] = {
        "color": color,
        "timestamp": (timestamp or utc_now()).isoformat(),
    }
    if author:
        embed["author"] = {"name": author, "icon_url": DEFAULT_ICON}
    if description:
        embed["description"] = _truncate(description, EMBED_DESCRIPTION_LIMIT)
    return embed


def add_field(
    embed: dict[str, Any], name: str, value: str, *, inline: bool = False
) -> dict[str, Any]:
    embed.setdefault("fields", []).append(
        {
            "name": name,
            "value": _truncate(value or "\u200b", EMBED_FIELD_VALUE_LIMIT),
            "inline": inline,
        }
    )
    return embed


def default_embed(text: str, *, success: bool = True) -> dict[str, Any]:
    return base_embed(
        author="Success!" if success else "Error",
        description=text,
        color=DEFAULT_COLOR if success else 0xFF0000,
    )


def _net_text(record: LaunchRecord) -> str:
    suffix = " (TBD)" if record.status is LaunchStatus.TBD else ""
    return f"{discord_timestamp(record.net)}{suffix}"


def scrub_text(previous: LaunchRecord, current: LaunchRecord) -> str:
    return (
        f"The launch of {current.payload} on a **{current.vehicle}** is now "
        f"scheduled for {_net_text(current)} instead of {_net_text(previous)}"
    )


def build_scrub_embed(previous: LaunchRecord, current: LaunchRecord) -> dict[str, Any]:
    embed = base_embed(author="Scrub Notice", description=scrub_text(previous, current))
    if current.rocket_img:
        embed["thumbnail"] = {"url": current.rocket_img}
    return embed


def outcome_text(record: LaunchRecord) -> str:
    return (
        f"The launch of {record.payload} on a {record.vehicle} has completed "
        f"with a status of **{record.status.label}**!"
    )


def build_outcome_embed(record: LaunchRecord) -> dict[str, Any]:
    embed = base_embed(
        author="Launch Outcome",
        description=outcome_text(record),
        color=status_color(record.status),
    )
    if record.rocket_img:
        embed["thumbnail"] = {"url": record.rocket_img}
    return embed


def build_reminder_embed(record: LaunchRecord, until_launch: timedelta) -> dict[str, Any]:
    lines = [
        f"**Payload:** {record.payload}",
        f"**Vehicle:** {record.vehicle}",
        f"**NET:** {discord_timestamp(record.net)}",
    ]
    live = record.live_url()
    if live:
        lines.append(f"**Live at:** {live}")
    embed = base_embed(
        author=f"{format_duration(until_launch)} till launch",
        description="\n".join(lines),
    )
    if record.rocket_img:
        embed["thumbnail"] = {"url": record.rocket_img}
    return embed


def build_launch_embed(
    record: LaunchRecord,
    *,
    title: str = "Next Launch",
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Detailed single-launch embed used by the launch commands."""
    current = now or utc_now()
    embed = base_embed(
        author=title,
        description="\n".join(
            [
                f"**Payload:** {record.payload}",
                f"**NET:** {discord_timestamp(record.net, 'F')}",
                f"**Provider:** {record.lsp}",
                f"**Location:** {record.location}",
                f"**Launch Window:** {format_duration(record.launch_window)}",
            ]
        ),
    )
    status = record.status
    embed["title"] = f"{record.vehicle}\n\nStatus: {status.emoji} {status.label}"
    if record.net > current:
        add_field(
            embed,
            "Time until launch:",
            format_duration(record.net - current),
            inline=True,
        )
    if record.mission_description:
        add_field(embed, "Mission", record.mission_description)
    if record.vid_urls:
        links = "\n".join(f"<{url}>" for url in record.vid_urls[:5])
        add_field(embed, "Links", links, inline=True)
    if record.rocket_img:
        embed["thumbnail"] = {"url": record.rocket_img}
    return embed


def build_launch_list_embed(
    records: list[LaunchRecord], *, page: int, page_count: int
) -> dict[str, Any]:
    if not records:
        return base_embed(
            author="Upcoming Launches",
            description="I found no upcoming launches :(",
        )
    embed = base_embed(author="Upcoming Launches")
    for record in records:
        add_field(
            embed,
            f"{record.ordinal + 1}: {record.vehicle}",
            (
                f"**Payload:** {record.payload}\n"
                f"**NET:** {discord_timestamp(record.net)}\n"
                f"**Status:** {record.status.emoji} {record.status.label}"
            ),
        )
    embed["footer"] = {"text": f"Page {page + 1} of {max(page_count, 1)}"}
    return embed
