"""Spaceflight launch reminders and notifications for Discord."""

__version__ = "0.4.0"
