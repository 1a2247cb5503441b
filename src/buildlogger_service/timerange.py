"""Time range value type and RFC3339 helpers.

All instants are timezone-aware UTC datetimes. The zero instant
(0001-01-01T00:00:00Z) stands for "unset", so a TimeRange whose bounds are both
zero is the zero range.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

# Full RFC3339 date-time: date, "T", time, optional fraction, Z or offset.
_RFC3339_RE = re.compile(
    r"^[0-9]{4}-[0-9]{2}-[0-9]{2}[Tt][0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]+)?([Zz]|[+-][0-9]{2}:[0-9]{2})$"
)


def is_zero_time(value: datetime) -> bool:
    """Return True when value is the zero instant."""
    return _as_utc(value) == ZERO_TIME


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp into an aware UTC datetime.

    Args:
        value: Timestamp such as "2021-01-02T00:00:00Z" or
            "2021-01-02T02:00:00+02:00".

    Returns:
        The instant converted to UTC.

    Raises:
        ValueError: If the value is not a complete RFC3339 date-time.
    """
    if not _RFC3339_RE.fullmatch(value):
        raise ValueError(f"'{value}' is not an RFC3339 timestamp")

    normalized = value.upper()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"

    # fromisoformat only accepts up to six fractional digits
    if "." in normalized:
        head, rest = normalized.split(".", 1)
        digits = rest[:-6]
        normalized = f"{head}.{digits[:6].ljust(6, '0')}{rest[-6:]}"

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        raise ValueError(f"'{value}' is not an RFC3339 timestamp")
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        raise ValueError(f"'{value}' is outside the representable UTC range")


def format_rfc3339(value: datetime) -> str:
    """Format an instant as RFC3339 with second precision, UTC rendered as Z."""
    formatted = _as_utc(value).isoformat(timespec="seconds")
    if formatted.endswith("+00:00"):
        formatted = formatted[:-6] + "Z"
    return formatted


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError:
        raise ValueError(f"{value.isoformat()} is outside the representable UTC range")


@dataclass(frozen=True)
class TimeRange:
    """Closed interval of instants, used both as a filter and an accumulator.

    Construction does not enforce start_at <= end_at; call is_valid() when the
    ordering matters.
    """

    start_at: datetime = ZERO_TIME
    end_at: datetime = ZERO_TIME

    def is_zero(self) -> bool:
        return is_zero_time(self.start_at) and is_zero_time(self.end_at)

    def is_valid(self) -> bool:
        return self.end_at >= self.start_at

    def duration(self) -> timedelta:
        return self.end_at - self.start_at

    def contains(self, instant: datetime) -> bool:
        """Return True when instant falls inside the range, bounds included."""
        return self.start_at <= instant <= self.end_at

    def before(self, instant: datetime) -> bool:
        """Return True when the whole range ends before instant."""
        return self.end_at < instant

    def after(self, instant: datetime) -> bool:
        """Return True when the whole range starts after instant."""
        return self.start_at > instant
