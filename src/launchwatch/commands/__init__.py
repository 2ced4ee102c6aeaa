"""Slash command handlers: launch listings and the notification settings menu."""
