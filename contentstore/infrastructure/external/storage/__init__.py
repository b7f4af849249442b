"""Storage: local filesystem, S3-compatible, and Backblaze B2 backends.

Factory creates the backend from contentstore.core.config. Implementations
are loaded lazily inside StorageFactory.create_storage_service() so that:
- Default (local) only requires aiofiles.
- boto3 is only imported when the s3 provider is selected.
- httpx clients are only created when backblaze-b2 is selected.

Implementations satisfy StorageProtocol (upload, download, delete, exists,
get_url, get_metadata, copy, generate_presigned_url, generate_key,
get_file_extension).
"""

from contentstore.infrastructure.external.storage.factory import (
    StorageFactory,
    get_storage,
)
from contentstore.infrastructure.external.storage.keys import (
    ensure_upload_allowed,
    generate_key,
    get_file_extension,
)
from contentstore.infrastructure.external.storage.models import (
    DownloadResult,
    FileMetadata,
    UploadResult,
)
from contentstore.infrastructure.external.storage.protocol import StorageProtocol

__all__ = [
    "DownloadResult",
    "FileMetadata",
    "StorageFactory",
    "StorageProtocol",
    "UploadResult",
    "ensure_upload_allowed",
    "generate_key",
    "get_file_extension",
    "get_storage",
]
