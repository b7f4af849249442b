"""Shared enumerations for contentstore.

Cross-cutting enums used by the storage providers, the provider factory,
and calling layers.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class StorageProvider(_ValuesMixin, str, Enum):
    """Storage provider kinds the factory can bind the contract to."""

    LOCAL = "local"
    S3 = "s3"
    BACKBLAZE_B2 = "backblaze-b2"

    @classmethod
    def parse(cls, value: str | None) -> "StorageProvider | None":
        """Return the matching provider, or None for an empty or unrecognized value.

        Matching is case-insensitive and ignores surrounding whitespace.
        "b2" is accepted as an alias for backblaze-b2.
        """
        normalized = (value or "").strip().lower()
        if normalized == "b2":
            return cls.BACKBLAZE_B2
        for member in cls:
            if member.value == normalized:
                return member
        return None


class PresignOperation(_ValuesMixin, str, Enum):
    """Operation a presigned URL grants."""

    GET = "get"
    PUT = "put"


class UploadFailureKind(_ValuesMixin, str, Enum):
    """Diagnostic classification of a failed upload. Used for logging only."""

    TIMEOUT = "timeout"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"
