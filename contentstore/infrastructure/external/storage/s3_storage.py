"""S3-compatible object storage (AWS S3, MinIO, etc.) with presigned URLs."""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from contentstore.core.constants import DEFAULT_CONTENT_TYPE
from contentstore.infrastructure.exceptions import (
    StorageConfigurationError,
    StorageCopyError,
    StorageDeleteError,
    StorageDownloadError,
    StorageNotFoundError,
    StorageUploadError,
    StorageUrlError,
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
from contentstore.shared.utils.datetime import utc_now

logger = get_logger(__name__)

_SPAN_ATTRS = {"storage.provider": "s3"}
_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchObject"})


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in _NOT_FOUND_CODES or status == 404


def _strip_etag(etag: str | None) -> str | None:
    return etag.replace('"', "") if etag else None


class S3StorageService:
    """S3-compatible storage: one signed request per operation.

    Uses boto3 (sync) via asyncio.to_thread for async API. Compatible with
    AWS S3 and MinIO (custom endpoint plus path-style addressing).
    """

    generate_key = staticmethod(generate_key)
    get_file_extension = staticmethod(get_file_extension)

    def __init__(
        self,
        bucket: str | None,
        access_key: str | None,
        secret_key: str | None,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        force_path_style: bool = True,
        signed_url_expires: int = 86400,
        client: Any | None = None,
    ) -> None:
        """Initialize S3 client.

        Args:
            bucket: Bucket name (required).
            access_key: Access key id (required).
            secret_key: Secret access key (required).
            region: AWS region.
            endpoint_url: Custom endpoint (MinIO); enables force_path_style.
            force_path_style: Use path-style addressing with a custom endpoint.
            signed_url_expires: Default presigned URL lifetime in seconds.
            client: Prebuilt boto3 S3 client (tests).

        Raises:
            StorageConfigurationError: If bucket or credentials are missing.
        """
        missing = [
            name
            for name, value in (
                ("STORAGE_S3_BUCKET", bucket),
                ("STORAGE_S3_ACCESS_KEY_ID", access_key),
                ("STORAGE_S3_SECRET_ACCESS_KEY", secret_key),
            )
            if not value
        ]
        if missing:
            raise StorageConfigurationError("S3", missing)

        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.signed_url_expires = signed_url_expires
        if client is not None:
            self._client = client
        else:
            extra: dict[str, Any] = {}
            if endpoint_url:
                extra["endpoint_url"] = endpoint_url
                if force_path_style:
                    extra["config"] = Config(s3={"addressing_style": "path"})
            self._client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                **extra,
            )
        logger.info("S3 storage initialized with bucket: %s", self.bucket)

    @traced("storage.s3.upload", _SPAN_ATTRS)
    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """put_object; returns a signed URL for the new object."""
        resolved_type = content_type or DEFAULT_CONTENT_TYPE

        def _put() -> dict[str, Any]:
            kwargs: dict[str, Any] = {
                "Bucket": self.bucket,
                "Key": key,
                "Body": data,
                "ContentType": resolved_type,
            }
            if metadata:
                kwargs["Metadata"] = {str(k): str(v) for k, v in metadata.items()}
            return self._client.put_object(**kwargs)

        try:
            result = await asyncio.to_thread(_put)
            url = await self.get_url(key)
        except (ClientError, BotoCoreError, StorageUrlError) as e:
            logger.error("Failed to upload file %s: %s", key, e)
            raise StorageUploadError(key, str(e)) from e

        logger.debug("File uploaded successfully: %s", key)
        return UploadResult(
            key=key,
            url=url,
            size=len(data),
            etag=_strip_etag(result.get("ETag")),
            content_type=resolved_type,
        )

    @traced("storage.s3.download", _SPAN_ATTRS)
    async def download(self, key: str) -> DownloadResult:
        """get_object; NoSuchKey becomes StorageNotFoundError."""
        def _get() -> DownloadResult:
            resp = self._client.get_object(Bucket=self.bucket, Key=key)
            return DownloadResult(
                data=resp["Body"].read(),
                content_type=resp.get("ContentType"),
                content_length=resp.get("ContentLength"),
                etag=_strip_etag(resp.get("ETag")),
            )

        try:
            return await asyncio.to_thread(_get)
        except ClientError as e:
            if _is_not_found(e):
                raise StorageNotFoundError(key) from e
            logger.error("Failed to download file %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e
        except BotoCoreError as e:
            logger.error("Failed to download file %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e

    @traced("storage.s3.delete", _SPAN_ATTRS)
    async def delete(self, key: str) -> None:
        """delete_object (S3 deletes are idempotent)."""
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=key
            )
        except ClientError as e:
            if _is_not_found(e):
                return
            logger.error("Failed to delete file %s: %s", key, e)
            raise StorageDeleteError(key, str(e)) from e
        except BotoCoreError as e:
            logger.error("Failed to delete file %s: %s", key, e)
            raise StorageDeleteError(key, str(e)) from e
        logger.debug("File deleted successfully: %s", key)

    @traced("storage.s3.exists", _SPAN_ATTRS)
    async def exists(self, key: str) -> bool:
        """head_object; 404 means False, other failures raise."""
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self.bucket, Key=key
            )
        except ClientError as e:
            if _is_not_found(e):
                return False
            logger.error("Failed to check file existence %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e
        except BotoCoreError as e:
            logger.error("Failed to check file existence %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e
        return True

    async def get_url(self, key: str, expires_in: int | None = None) -> str:
        """Presigned GET URL (always signed)."""
        return await self.generate_presigned_url(key, PresignOperation.GET, expires_in)

    @traced("storage.s3.get_metadata", _SPAN_ATTRS)
    async def get_metadata(self, key: str) -> FileMetadata:
        """head_object mapped to FileMetadata."""
        try:
            head = await asyncio.to_thread(
                self._client.head_object, Bucket=self.bucket, Key=key
            )
        except ClientError as e:
            if _is_not_found(e):
                raise StorageNotFoundError(key) from e
            logger.error("Failed to get metadata for %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e
        except BotoCoreError as e:
            logger.error("Failed to get metadata for %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e

        return FileMetadata(
            size=head.get("ContentLength") or 0,
            content_type=head.get("ContentType") or DEFAULT_CONTENT_TYPE,
            last_modified=head.get("LastModified") or utc_now(),
            etag=_strip_etag(head.get("ETag")),
            metadata=head.get("Metadata") or {},
        )

    @traced("storage.s3.copy", _SPAN_ATTRS)
    async def copy(self, source_key: str, destination_key: str) -> None:
        """Server-side copy_object within the bucket."""
        try:
            await asyncio.to_thread(
                self._client.copy_object,
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": source_key},
                Key=destination_key,
            )
        except ClientError as e:
            if _is_not_found(e):
                raise StorageNotFoundError(source_key) from e
            logger.error(
                "Failed to copy file from %s to %s: %s", source_key, destination_key, e
            )
            raise StorageCopyError(source_key, destination_key, str(e)) from e
        except BotoCoreError as e:
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
        """Sign a get_object or put_object request for expires_in (or the default)."""
        op = PresignOperation(operation)
        client_method = "get_object" if op is PresignOperation.GET else "put_object"
        expires = expires_in or self.signed_url_expires
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                client_method,
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to generate presigned URL for %s: %s", key, e)
            raise StorageUrlError(key, str(e)) from e
