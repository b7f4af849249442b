"""Shared utilities: UTC datetimes and secret masking."""

from contentstore.shared.utils.datetime import (
    from_timestamp_ms_utc,
    from_timestamp_utc,
    now_ms,
    utc_now,
)
from contentstore.shared.utils.masking import mask_secret

__all__ = [
    "from_timestamp_ms_utc",
    "from_timestamp_utc",
    "mask_secret",
    "now_ms",
    "utc_now",
]
