"""Date parsing and sync-window utilities."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def parse_iso_date(raw_date: Optional[str]) -> Optional[date]:
    """Parse a provider ISO date (YYYY-MM-DD), tolerating a time suffix.

    Args:
        raw_date: Date string from the provider, or None.

    Returns:
        Parsed date, or None if the value is empty or invalid.
    """
    if not raw_date:
        return None

    date_str = str(raw_date).strip()[:10]
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        return None


def date_to_iso(d: date) -> str:
    """Convert date to ISO format string.

    Args:
        d: Date to convert.

    Returns:
        ISO format string (YYYY-MM-DD).
    """
    return d.isoformat()


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO 8601 format with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def default_sync_window(
    history_days: int,
    today: Optional[date] = None,
) -> tuple[date, date]:
    """Get the default (date_from, date_to) window for a sync.

    Args:
        history_days: Number of days of history to request.
        today: Reference date (default: today).

    Returns:
        Tuple of (date_from, date_to), both inclusive.

    Raises:
        ValueError: If history_days is not positive.
    """
    if history_days <= 0:
        raise ValueError(f"history_days must be positive, got {history_days}")

    if today is None:
        today = date.today()

    return today - timedelta(days=history_days), today


def validate_date_range(
    date_from: Optional[date],
    date_to: Optional[date],
) -> None:
    """Check that a date range is ordered.

    Args:
        date_from: Start date (inclusive), or None.
        date_to: End date (inclusive), or None.

    Raises:
        ValueError: If date_from is after date_to.
    """
    if date_from is not None and date_to is not None and date_from > date_to:
        raise ValueError(
            f"date_from ({date_from.isoformat()}) is after date_to ({date_to.isoformat()})"
        )
