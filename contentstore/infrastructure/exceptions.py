"""Infrastructure exceptions for storage operations.

Storage errors extend ContentStoreException so callers can map them to
responses consistently. Providers catch transport and SDK errors and
re-raise one of these, carrying the upstream message as ``reason``.
"""

from contentstore.domain.exceptions import ContentStoreException


class StorageException(ContentStoreException):
    """Base exception for storage operations."""


class StorageConfigurationError(StorageException):
    """Provider is missing required configuration. Fatal at construction."""

    def __init__(self, provider: str, missing: list[str]) -> None:
        super().__init__(
            f"{provider} storage configuration is incomplete: missing {', '.join(missing)}",
            "STORAGE_CONFIGURATION_ERROR",
            {"provider": provider, "missing": missing},
        )


class StorageAuthenticationError(StorageException):
    """Provider rejected the configured credentials, or a session could not be refreshed."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(
            f"Authentication with {provider} failed: {reason}",
            "STORAGE_AUTHENTICATION_ERROR",
            {"provider": provider, "reason": reason},
        )


class StorageNotFoundError(StorageException):
    """File or object not found in storage."""

    def __init__(self, file_path: str) -> None:
        super().__init__(
            f"File not found: {file_path}",
            "STORAGE_NOT_FOUND",
            {"file_path": file_path},
        )


class StorageUploadError(StorageException):
    """File upload failed."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to upload file: {reason}",
            "STORAGE_UPLOAD_ERROR",
            {"file_path": file_path, "reason": reason},
        )


class StorageDownloadError(StorageException):
    """File download, existence check, or metadata read failed."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to download file: {reason}",
            "STORAGE_DOWNLOAD_ERROR",
            {"file_path": file_path, "reason": reason},
        )


class StorageDeleteError(StorageException):
    """File deletion failed."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to delete file: {reason}",
            "STORAGE_DELETE_ERROR",
            {"file_path": file_path, "reason": reason},
        )


class StorageCopyError(StorageException):
    """Server-side or local copy failed."""

    def __init__(self, source_path: str, destination_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to copy file: {reason}",
            "STORAGE_COPY_ERROR",
            {
                "source_path": source_path,
                "destination_path": destination_path,
                "reason": reason,
            },
        )


class StorageUrlError(StorageException):
    """URL or presigned URL could not be issued."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to generate URL: {reason}",
            "STORAGE_URL_ERROR",
            {"file_path": file_path, "reason": reason},
        )


class StoragePermissionError(StorageException):
    """Insufficient permissions for storage operation (e.g. path traversal)."""

    def __init__(self, file_path: str, operation: str) -> None:
        super().__init__(
            f"Permission denied for {operation} on {file_path}",
            "STORAGE_PERMISSION_ERROR",
            {"file_path": file_path, "operation": operation},
        )
