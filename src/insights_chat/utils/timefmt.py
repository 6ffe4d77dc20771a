"""Human-friendly time formatting for the conversation view."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from insights_chat.core.models import Message


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _plural(count: int, unit: str) -> str:
    return f"1 {unit} ago" if count == 1 else f"{count} {unit}s ago"


def format_full_date(moment: datetime) -> str:
    """E.g. ``Dec 14, 2024``."""
    return f"{moment:%b} {moment.day}, {moment.year}"


def format_full_timestamp(moment: datetime) -> str:
    """E.g. ``Dec 14, 2024 03:45 PM``."""
    return f"{format_full_date(moment)} {moment:%I:%M %p}"


def format_relative_time(moment: datetime, now: Optional[datetime] = None) -> str:
    seconds = int((_now(now) - moment).total_seconds())
    if seconds < 10:
        return "Just now"
    if seconds < 60:
        return f"{seconds} sec ago"

    minutes = seconds // 60
    if minutes < 60:
        return "1 min ago" if minutes == 1 else f"{minutes} min ago"

    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")

    days = hours // 24
    if days < 7:
        return _plural(days, "day")

    weeks = days // 7
    if weeks < 4:
        return _plural(weeks, "week")

    return format_full_date(moment)


def get_date_label(moment: datetime, now: Optional[datetime] = None) -> str:
    """``Today``, ``Yesterday`` or the full date, in *moment*'s own timezone."""
    current = _now(now)
    if moment.tzinfo is not None:
        current = current.astimezone(moment.tzinfo)
    today: date = current.date()
    if moment.date() == today:
        return "Today"
    if moment.date() == today - timedelta(days=1):
        return "Yesterday"
    return format_full_date(moment)


def session_duration(messages: Iterable[Message], now: Optional[datetime] = None) -> str:
    """Time elapsed since the first message, e.g. ``< 1 min`` or ``2h 5m``."""
    first = next(iter(messages), None)
    if first is None:
        return "0 min"

    minutes = int((_now(now) - first.timestamp).total_seconds() // 60)
    if minutes < 1:
        return "< 1 min"
    if minutes < 60:
        return f"{minutes} min"
    return f"{minutes // 60}h {minutes % 60}m"


def group_by_date(messages: Iterable[Message], now: Optional[datetime] = None) -> dict[str, list[Message]]:
    """Group messages under their date label, keeping arrival order."""
    groups: dict[str, list[Message]] = {}
    for message in messages:
        groups.setdefault(get_date_label(message.timestamp, now), []).append(message)
    return groups
