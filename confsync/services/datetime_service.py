"""Datetime helpers: lax input -> strict timezone-aware output."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum

# Backup file suffix format: sortable, no characters that are awkward in file names
BACKUP_FORMAT = "%Y%m%dT%H%M%S%fZ"


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes.

    SQLite drops the offset on storage, so values read back from the database
    are naive even though every value written is UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts ISO 8601 variants (``2026-02-02T22:21:29+00:00``), space-separated
    forms (``2026-02-02 22:21``) and bare dates (``2026-02-02``). A missing
    timezone defaults to ``default_tz``; missing time components default to zero.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=pendulum.timezone(default_tz))  # type: ignore[arg-type]
        return value

    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def backup_timestamp(dt: datetime | None = None) -> str:
    """Format a UTC timestamp for use in backup file names."""
    value = ensure_aware(dt or now_utc()).astimezone(timezone.utc)
    return value.strftime(BACKUP_FORMAT)
