"""Discord integration: REST and gateway clients plus the bot service."""
