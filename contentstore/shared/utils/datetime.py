"""
UTC datetime helpers.

Every datetime contentstore returns (FileMetadata.last_modified, session
timestamps) is timezone-aware UTC.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def from_timestamp_utc(timestamp: float) -> datetime:
    """
    Aware UTC datetime from a Unix timestamp in seconds (e.g. st_mtime).

    Args:
        timestamp: Seconds since epoch

    Returns:
        UTC-aware datetime
    """
    return datetime.fromtimestamp(timestamp, tz=UTC)


def from_timestamp_ms_utc(timestamp_ms: int) -> datetime:
    """
    Aware UTC datetime from a Unix timestamp in milliseconds.

    B2 reports uploadTimestamp in milliseconds.

    Args:
        timestamp_ms: Milliseconds since epoch

    Returns:
        UTC-aware datetime
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def now_ms() -> int:
    """Current Unix time in milliseconds (object key timestamps)."""
    return int(utc_now().timestamp() * 1000)
