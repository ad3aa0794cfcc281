from __future__ import annotations

import calendar
from datetime import UTC, date, datetime, timedelta
from typing import Optional

from ..errors import ConfigurationError

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def parse_api_datetime(date_str: str) -> datetime:
    """Parse API ISO timestamps like '2026-01-12T10:11:12Z' to aware datetime."""
    if not isinstance(date_str, str):
        raise ValueError(f"Expected an ISO timestamp string, got {type(date_str).__name__}")
    # APIs use 'Z' for UTC. Normalize to '+00:00' before parsing.
    if date_str.endswith("Z"):
        date_str = date_str[:-1] + "+00:00"
    parsed = datetime.fromisoformat(date_str)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - EPOCH) // timedelta(milliseconds=1)


def api_datetime_to_millis(date_str: str) -> int:
    return to_millis(parse_api_datetime(date_str))


def millis_to_iso(millis: int) -> str:
    return (EPOCH + timedelta(milliseconds=millis)).isoformat().replace("+00:00", "Z")


def subtract_months(value: datetime, months: int) -> datetime:
    total = value.year * 12 + (value.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def resolve_cutoff(
    *,
    days: Optional[int] = None,
    months: Optional[int] = None,
    since: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Resolve the cutoff to milliseconds since the epoch.

    An absolute ``since`` date wins over ``months``, which wins over ``days``.
    """

    if since:
        try:
            if len(since.strip()) == 10:
                start = datetime.combine(date.fromisoformat(since.strip()), datetime.min.time(), UTC)
            else:
                start = parse_api_datetime(since.strip())
        except ValueError as exc:
            raise ConfigurationError(f"Invalid date '{since}': expected YYYY-MM-DD or ISO 8601") from exc
        return to_millis(start)

    now = now or datetime.now(UTC)
    if months is not None:
        if months < 0:
            raise ConfigurationError("months must not be negative")
        return to_millis(subtract_months(now, months))

    if days is None:
        raise ConfigurationError("One of days, months or since is required")
    if days < 0:
        raise ConfigurationError("days must not be negative")
    return to_millis(now - timedelta(days=days))
