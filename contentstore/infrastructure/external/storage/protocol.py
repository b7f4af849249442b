"""Storage service protocol (DIP).

Implementations: LocalStorageService, S3StorageService, B2StorageService.
"""

from typing import Protocol, runtime_checkable

from contentstore.infrastructure.external.storage.models import (
    DownloadResult,
    FileMetadata,
    UploadResult,
)
from contentstore.shared.enums import PresignOperation


@runtime_checkable
class StorageProtocol(Protocol):
    """Protocol for object storage backends (local, S3-compatible, B2)."""

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Write the object. Returns the caller's key, URL, size, and etag if known."""
        ...

    async def download(self, key: str) -> DownloadResult:
        """Read the object. Raises StorageNotFoundError if absent."""
        ...

    async def delete(self, key: str) -> None:
        """Delete the object. A missing object is not an error."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if the object exists. Never raises for a missing object."""
        ...

    async def get_url(self, key: str, expires_in: int | None = None) -> str:
        """Return a durable or time-limited URL for the object."""
        ...

    async def get_metadata(self, key: str) -> FileMetadata:
        """Return metadata without downloading. Raises StorageNotFoundError if absent."""
        ...

    async def copy(self, source_key: str, destination_key: str) -> None:
        """Copy an object. Raises StorageNotFoundError if the source is absent."""
        ...

    async def generate_presigned_url(
        self,
        key: str,
        operation: PresignOperation | str,
        expires_in: int | None = None,
    ) -> str:
        """Return a URL granting ``operation`` ("get" or "put") on the object."""
        ...

    def generate_key(self, folder: str, file_name: str, prefix: str | None = None) -> str:
        """Build a unique key: folder[/prefix]/{ms}-{token}-{sanitized_name}."""
        ...

    def get_file_extension(self, file_name: str) -> str:
        """Lowercase suffix after the last ".", or ""."""
        ...
