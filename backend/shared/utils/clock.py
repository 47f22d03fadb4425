"""
Injectable wall clock for scheduled work.
Jobs read "now" and wait through a Clock so tests can drive time directly.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


class Clock:
    """Real UTC clock backed by asyncio.sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def to_rfc3339(value: datetime) -> str:
    """UTC RFC 3339 timestamp with a Z suffix, as Google APIs expect."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def format_display_time(value: datetime, tz_name: str) -> str:
    """Viewer-facing start time, e.g. "Mon, Jan 1, 3:30 PM"."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(ZoneInfo(tz_name))
    hour = local.hour % 12 or 12
    return f"{local:%a, %b} {local.day}, {hour}:{local:%M %p}"

