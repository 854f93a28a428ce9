"""Wall-clock helpers shared by the delivery calculators."""

from __future__ import annotations

import re
from datetime import datetime, time, timedelta

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_hhmm(value: str) -> time:
    """Parse ``HH:MM`` (optionally ``HH:MM:SS``, as stored by some databases)."""
    m = _HHMM_RE.match(str(value or "").strip())
    if not m:
        raise ValueError(f"invalid time (expected HH:MM): {value!r}")
    hour, minute, second = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"invalid time (expected HH:MM): {value!r}")
    return time(hour=hour, minute=minute, second=second)


def span_hours(start_time: str, end_time: str) -> float:
    """Hours between two same-day wall-clock times; negative if end < start."""
    start = parse_hhmm(start_time)
    end = parse_hhmm(end_time)
    start_s = start.hour * 3600 + start.minute * 60 + start.second
    end_s = end.hour * 3600 + end.minute * 60 + end.second
    return (end_s - start_s) / 3600.0


def format_clock(value: time) -> str:
    """12-hour clock with AM/PM, e.g. ``10:00 AM``."""
    return value.strftime("%I:%M %p")


def clock_after(start_time: str, hours: float) -> str:
    """Format ``start_time + hours`` on the 12-hour clock, rounded to the minute."""
    start = datetime.combine(datetime.min.date(), parse_hhmm(start_time))
    return format_clock((start + timedelta(minutes=round(hours * 60))).time())


def format_hours_and_minutes(hours: float) -> str:
    """Human-readable duration: ``8h 30m``, ``45m``, ``2d 3h``."""
    if hours == 0:
        return "0h 0m"

    if hours >= 24:
        days = int(hours // 24)
        remaining_hours = int(hours % 24)
        minutes = round((hours - int(hours)) * 60)
        parts = [f"{days}d"]
        if remaining_hours:
            parts.append(f"{remaining_hours}h")
        if minutes:
            parts.append(f"{minutes}m")
        return " ".join(parts)

    whole_hours = int(hours)
    minutes = round((hours - whole_hours) * 60)
    if whole_hours == 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{whole_hours}h"
    return f"{whole_hours}h {minutes}m"
