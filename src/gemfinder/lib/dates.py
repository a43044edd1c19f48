"""Timestamp helpers shared by models and stores."""

from __future__ import annotations

from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as stored in the data store.

    Accepts the trailing "Z" that hosted Postgres backends emit.

    Args:
        value: ISO string, datetime, or None.

    Returns:
        datetime or None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime for storage."""
    return value.isoformat() if value else None


def local_date(value: datetime) -> date:
    """Calendar date of a timestamp in the local timezone.

    Naive datetimes are taken as already local.
    """
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.date()
