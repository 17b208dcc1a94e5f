"""Helpers for working with instants (timezone-aware UTC datetimes)."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Union

# Windows SystemTime carries 7 fractional digits; datetime accepts at most 6.
_FRACTION = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    """Return the current wall-clock instant."""

    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Union[str, int, float, datetime]) -> datetime:
    """Parse an ISO-8601 string or epoch seconds into a UTC datetime.

    Raises ValueError on anything else.
    """

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"Not an instant: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not an instant: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return ensure_utc(datetime.fromisoformat(text))


def format_system_time(value: datetime) -> str:
    """Format an instant the way Windows event XML stores SystemTime."""

    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
