from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso_utc_z() -> str:
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


now_iso = now_iso_utc_z


def parse_iso_datetime(value: object) -> Optional[datetime]:
    """Parse feed timestamps such as ``2024-05-01T12:30:00Z`` into aware UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def discord_timestamp(moment: datetime, style: Optional[str] = None) -> str:
    ts = int(moment.timestamp())
    if style:
        return f"<t:{ts}:{style}>"
    return f"<t:{ts}>"


def _plural(amount: int, unit: str) -> str:
    return f"{amount} {unit}" if amount == 1 else f"{amount} {unit}s"


def format_duration(duration: timedelta, *, include_seconds: bool = False) -> str:
    """Render ``1 day, 6 hours and 15 minutes`` style text."""
    total = int(abs(duration.total_seconds()))
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts: list[str] = []
    if days:
        parts.append(_plural(days, "day"))
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes:
        parts.append(_plural(minutes, "minute"))
    if include_seconds and seconds:
        parts.append(_plural(seconds, "second"))

    if not parts:
        return "0 seconds" if include_seconds else "0 minutes"
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


__all__ = [
    "discord_timestamp",
    "format_duration",
    "now_iso",
    "now_iso_utc_z",
    "parse_iso_datetime",
    "utc_now",
]
