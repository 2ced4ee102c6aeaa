"""Subscriber settings, filters and notification fan-out."""
