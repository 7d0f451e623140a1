"""Datetime helpers."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)
