"""Compact, locale-independent contest duration strings."""
from __future__ import annotations

from typing import Optional, Union

_MINUTE = 60
_HOUR = 3600
_DAY = 86400


def format_duration(seconds: Optional[Union[int, float]]) -> str:
    """
    Render a duration for display.

    Fractional seconds are truncated. At a day or more only days and hours
    are shown ("1d", "2d 5h"); below that hours and minutes ("2h", "1h 30m",
    "45m"). Zero, negative or missing input renders as "".
    """
    if not seconds or seconds <= 0:
        return ""
    total = int(seconds)

    if total >= _DAY:
        days, rest = divmod(total, _DAY)
        hours = rest // _HOUR
        return f"{days}d {hours}h" if hours > 0 else f"{days}d"

    hours, rest = divmod(total, _HOUR)
    minutes = rest // _MINUTE
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    return " ".join(parts)
