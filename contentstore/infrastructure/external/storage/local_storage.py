"""Local filesystem storage with path validation and JSON metadata sidecars."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

import aiofiles
import aiofiles.os

from contentstore.core.constants import DEFAULT_CONTENT_TYPE, METADATA_SIDECAR_SUFFIX
from contentstore.infrastructure.exceptions import (
    StorageCopyError,
    StorageDeleteError,
    StorageDownloadError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageUploadError,
)
from contentstore.infrastructure.external.storage.keys import (
    generate_key,
    get_file_extension,
)
from contentstore.infrastructure.external.storage.models import (
    DownloadResult,
    FileMetadata,
    UploadResult,
)
from contentstore.shared.enums import PresignOperation
from contentstore.shared.telemetry.logging import get_logger
from contentstore.shared.telemetry.tracing import traced
from contentstore.shared.utils.datetime import from_timestamp_utc, utc_now

logger = get_logger(__name__)

_SPAN_ATTRS = {"storage.provider": "local"}


class LocalStorageService:
    """Local filesystem storage with path traversal protection.

    Payload lives at ``base_path/key``; metadata in a ``key.meta`` JSON
    sidecar holding contentType, metadata, and uploadedAt. URLs are the
    configured base URL plus the key; nothing is signed.
    """

    generate_key = staticmethod(generate_key)
    get_file_extension = staticmethod(get_file_extension)

    def __init__(self, base_path: str, base_url: str) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for all files (created if missing).
            base_url: Public base URL the files are served from.
        """
        self.base_path = Path(base_path).resolve()
        self.base_url = base_url.rstrip("/")
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info("Local storage initialized at %s", self.base_path)

    def _get_full_path(self, key: str) -> Path:
        """Resolve and validate path under base_path. Raises StoragePermissionError if traversal."""
        full_path = (self.base_path / key.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.base_path)
        except ValueError as e:
            raise StoragePermissionError(key, "path_validation") from e
        if full_path == self.base_path:
            raise StoragePermissionError(key, "path_validation")
        return full_path

    @staticmethod
    def _sidecar_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + METADATA_SIDECAR_SUFFIX)

    async def _write_sidecar(self, file_path: Path, document: dict[str, Any]) -> None:
        async with aiofiles.open(self._sidecar_path(file_path), "w") as f:
            await f.write(json.dumps(document, indent=2))

    async def _read_sidecar(self, file_path: Path) -> dict[str, Any]:
        """Read JSON sidecar, or empty dict when absent or unreadable."""
        try:
            async with aiofiles.open(self._sidecar_path(file_path), "r") as f:
                content = await f.read()
        except FileNotFoundError:
            return {}
        try:
            result = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed metadata sidecar for %s", file_path)
            return {}
        return cast(dict[str, Any], result) if isinstance(result, dict) else {}

    async def _remove_if_present(self, path: Path) -> bool:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True

    @traced("storage.local.upload", _SPAN_ATTRS)
    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Write payload and, when content type or metadata is given, the sidecar."""
        try:
            target_path = self._get_full_path(key)
            target_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target_path, "wb") as f:
                await f.write(data)
            if metadata or content_type:
                await self._write_sidecar(
                    target_path,
                    {
                        "contentType": content_type,
                        "metadata": metadata or {},
                        "uploadedAt": utc_now().isoformat(),
                    },
                )
            else:
                await self._remove_if_present(self._sidecar_path(target_path))
        except StoragePermissionError:
            raise
        except Exception as e:
            logger.error("Failed to upload file %s: %s", key, e)
            raise StorageUploadError(key, str(e)) from e

        logger.debug("File uploaded successfully: %s", key)
        return UploadResult(
            key=key,
            url=await self.get_url(key),
            size=len(data),
            content_type=content_type,
        )

    @traced("storage.local.download", _SPAN_ATTRS)
    async def download(self, key: str) -> DownloadResult:
        """Read payload; content type comes from the sidecar when present."""
        try:
            file_path = self._get_full_path(key)
            async with aiofiles.open(file_path, "rb") as f:
                data = await f.read()
            sidecar = await self._read_sidecar(file_path)
        except FileNotFoundError as e:
            raise StorageNotFoundError(key) from e
        except StoragePermissionError:
            raise
        except Exception as e:
            logger.error("Failed to download file %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e

        return DownloadResult(
            data=data,
            content_type=sidecar.get("contentType"),
            content_length=len(data),
        )

    @traced("storage.local.delete", _SPAN_ATTRS)
    async def delete(self, key: str) -> None:
        """Delete payload and sidecar. A missing file is a no-op."""
        try:
            file_path = self._get_full_path(key)
            removed = await self._remove_if_present(file_path)
            await self._remove_if_present(self._sidecar_path(file_path))
        except StoragePermissionError:
            raise
        except Exception as e:
            logger.error("Failed to delete file %s: %s", key, e)
            raise StorageDeleteError(key, str(e)) from e
        if removed:
            logger.debug("File deleted successfully: %s", key)

    @traced("storage.local.exists", _SPAN_ATTRS)
    async def exists(self, key: str) -> bool:
        """Return True if a payload file exists for key."""
        return await aiofiles.os.path.isfile(self._get_full_path(key))

    async def get_url(self, key: str, expires_in: int | None = None) -> str:
        """Static URL; expires_in is accepted and ignored."""
        return f"{self.base_url}/{key}"

    @traced("storage.local.get_metadata", _SPAN_ATTRS)
    async def get_metadata(self, key: str) -> FileMetadata:
        """Return size, content type, mtime, and sidecar metadata."""
        try:
            file_path = self._get_full_path(key)
            stat = await aiofiles.os.stat(file_path)
            sidecar = await self._read_sidecar(file_path)
        except FileNotFoundError as e:
            raise StorageNotFoundError(key) from e
        except StoragePermissionError:
            raise
        except Exception as e:
            logger.error("Failed to get metadata for %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e

        return FileMetadata(
            size=stat.st_size,
            content_type=sidecar.get("contentType") or DEFAULT_CONTENT_TYPE,
            last_modified=from_timestamp_utc(stat.st_mtime),
            metadata=sidecar.get("metadata") or {},
        )

    @traced("storage.local.copy", _SPAN_ATTRS)
    async def copy(self, source_key: str, destination_key: str) -> None:
        """Duplicate payload and sidecar (if any)."""
        try:
            source_path = self._get_full_path(source_key)
            destination_path = self._get_full_path(destination_key)
            async with aiofiles.open(source_path, "rb") as f:
                data = await f.read()
            destination_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(destination_path, "wb") as f:
                await f.write(data)
            sidecar = await self._read_sidecar(source_path)
            if sidecar:
                await self._write_sidecar(destination_path, sidecar)
            else:
                await self._remove_if_present(self._sidecar_path(destination_path))
        except FileNotFoundError as e:
            raise StorageNotFoundError(source_key) from e
        except StoragePermissionError:
            raise
        except Exception as e:
            logger.error(
                "Failed to copy file from %s to %s: %s", source_key, destination_key, e
            )
            raise StorageCopyError(source_key, destination_key, str(e)) from e
        logger.debug("File copied from %s to %s", source_key, destination_key)

    async def generate_presigned_url(
        self,
        key: str,
        operation: PresignOperation | str,
        expires_in: int | None = None,
    ) -> str:
        """Static URL for either operation; local storage does not sign."""
        PresignOperation(operation)
        return await self.get_url(key)
