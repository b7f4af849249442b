"""Key generation and upload-policy helpers shared by every storage provider.

These are plain functions; providers expose generate_key and
get_file_extension by composition rather than through a base class.
"""

from __future__ import annotations

import re
import secrets
import string
from typing import TYPE_CHECKING

from contentstore.domain.exceptions import ValidationException
from contentstore.shared.utils.datetime import now_ms

if TYPE_CHECKING:
    from contentstore.core.config import Settings

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_TOKEN_ALPHABET = string.digits + string.ascii_lowercase
_TOKEN_LENGTH = 11


def sanitize_file_name(file_name: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", file_name)


def _random_token() -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(_TOKEN_LENGTH))


def generate_key(folder: str, file_name: str, prefix: str | None = None) -> str:
    """Build a unique object key.

    Format: ``folder[/prefix]/{timestamp_ms}-{token}-{sanitized_file_name}``.

    Args:
        folder: Top-level folder (e.g. "documents").
        file_name: Original file name; unsafe characters become "_".
        prefix: Optional extra path segment placed after the folder.

    Returns:
        The generated key.
    """
    parts = [folder]
    if prefix:
        parts.append(prefix)
    parts.append(f"{now_ms()}-{_random_token()}-{sanitize_file_name(file_name)}")
    return "/".join(parts)


def get_file_extension(file_name: str) -> str:
    """Lowercase suffix after the last ".", or "" when there is none."""
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[1].lower()


def validate_file_type(content_type: str, allowed_types: list[str]) -> bool:
    """Return True if content_type is allowed.

    Entries match exactly, or as wildcards: "*/*" allows everything and
    "image/*" allows any image subtype.
    """
    content_type = (content_type or "").split(";", 1)[0].strip().lower()
    for allowed in allowed_types:
        allowed = allowed.strip().lower()
        if allowed in ("*", "*/*") or allowed == content_type:
            return True
        if allowed.endswith("/*") and content_type.startswith(allowed[:-1]):
            return True
    return False


def validate_file_size(size: int, max_size: int) -> bool:
    """Return True if size does not exceed max_size."""
    return size <= max_size


def ensure_upload_allowed(
    content_type: str,
    size: int,
    settings: Settings | None = None,
) -> None:
    """Check an upload against the configured type and size policy.

    Meant for the calling layer before it hands bytes to a provider.

    Raises:
        ValidationException: If the type or size is outside policy.
    """
    from contentstore.core.config import get_settings

    s = settings or get_settings()
    if not validate_file_type(content_type, s.allowed_mime_type_list):
        raise ValidationException(
            f"File type not allowed: {content_type}", field="content_type"
        )
    if not validate_file_size(size, s.max_upload_size):
        raise ValidationException(
            f"File too large: {size} bytes (max {s.max_upload_size})", field="size"
        )
