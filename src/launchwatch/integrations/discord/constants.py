from __future__ import annotations

DISCORD_API_BASE_URL = "https://discord.com/api/v10"
DISCORD_GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"

# Discord hard limit for message content.
DISCORD_MAX_MESSAGE_LENGTH = 2000

# Gateway intents bitflags (https://discord.com/developers/docs/topics/gateway#gateway-intents).
DISCORD_INTENT_GUILDS = 1 << 0
DISCORD_INTENT_GUILD_MESSAGES = 1 << 9

# Interaction types delivered with INTERACTION_CREATE.
INTERACTION_TYPE_PING = 1
INTERACTION_TYPE_APPLICATION_COMMAND = 2
INTERACTION_TYPE_MESSAGE_COMPONENT = 3
INTERACTION_TYPE_AUTOCOMPLETE = 4
INTERACTION_TYPE_MODAL_SUBMIT = 5

# Message component types.
COMPONENT_TYPE_ACTION_ROW = 1
COMPONENT_TYPE_BUTTON = 2
COMPONENT_TYPE_STRING_SELECT = 3
COMPONENT_TYPE_TEXT_INPUT = 4

# Channel types that can receive bot messages.
CHANNEL_TYPE_GUILD_TEXT = 0
CHANNEL_TYPE_GUILD_ANNOUNCEMENT = 5
