from __future__ import annotations

from typing import Any

# Discord application command option types.
CHANNEL = 7

# Channel types selectable in /notifychannel.
TEXT_CHANNEL_TYPES = [0, 5]

NOTIFYME = "notifyme"
NOTIFYCHANNEL = "notifychannel"
NEXTLAUNCH = "nextlaunch"
LAUNCHES = "launches"

# dm_permission false keeps the command out of direct messages.
_GUILD_ONLY = {"dm_permission": False}


def build_application_commands() -> list[dict[str, Any]]:
    return [
        {
            "type": 1,
            "name": NOTIFYME,
            "description": "Manage launch notifications sent to your direct messages",
        },
        {
            "type": 1,
            "name": NOTIFYCHANNEL,
            "description": "Manage launch notifications for a channel in this server",
            "default_member_permissions": "32",
            **_GUILD_ONLY,
            "options": [
                {
                    "type": CHANNEL,
                    "name": "target_channel",
                    "description": "Channel to configure (defaults to this channel)",
                    "required": False,
                    "channel_types": TEXT_CHANNEL_TYPES,
                }
            ],
        },
        {
            "type": 1,
            "name": NEXTLAUNCH,
            "description": "Show the next launch that is Go for launch",
        },
        {
            "type": 1,
            "name": LAUNCHES,
            "description": "Browse upcoming launches",
        },
    ]
