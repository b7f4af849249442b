"""Helpers for keeping credentials out of logs."""

_VISIBLE_CHARS = 6


def mask_secret(value: str | None) -> str:
    """Return a short, non-reversible preview of a secret for log lines.

    At most the first 6 characters are kept; short values are fully hidden.
    """
    if not value:
        return "<unset>"
    if len(value) <= _VISIBLE_CHARS * 2:
        return "***"
    return f"{value[:_VISIBLE_CHARS]}..."
