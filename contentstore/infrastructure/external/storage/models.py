"""Value objects returned by storage operations. Built fresh per call."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class UploadResult:
    """Outcome of an upload. ``key`` is always the caller's logical key."""

    key: str
    url: str
    size: int
    etag: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class DownloadResult:
    """Object payload plus the transfer headers the provider exposed."""

    data: bytes
    content_type: str | None = None
    content_length: int | None = None
    etag: str | None = None


@dataclass(frozen=True)
class FileMetadata:
    """Object metadata read without downloading the payload."""

    size: int
    content_type: str
    last_modified: datetime
    etag: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
