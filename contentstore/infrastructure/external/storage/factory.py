"""Storage service factory: binds the storage contract to one provider from settings."""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from contentstore.infrastructure.external.storage.protocol import StorageProtocol
from contentstore.shared.enums import StorageProvider
from contentstore.shared.telemetry.logging import get_logger

if TYPE_CHECKING:
    from contentstore.core.config import Settings

logger = get_logger(__name__)


def _secret(value) -> str | None:
    return value.get_secret_value() if value is not None else None


class StorageFactory:
    """Factory for storage service instances based on configuration."""

    @staticmethod
    def create_storage_service(settings: "Settings | None" = None) -> StorageProtocol:
        """Create storage service from settings.

        An empty or unrecognized STORAGE_PROVIDER falls back to local storage
        with a warning. A recognized provider with missing credentials fails.

        Args:
            settings: Application settings; if None, uses get_settings().

        Returns:
            LocalStorageService, S3StorageService, or B2StorageService.

        Raises:
            StorageConfigurationError: Selected provider is missing required config.
        """
        from contentstore.core.config import get_settings

        s = settings or get_settings()
        provider = StorageProvider.parse(s.storage_provider)

        if provider is None:
            logger.warning(
                "Unknown storage provider %r, falling back to local storage. Supported: %s",
                s.storage_provider,
                ", ".join(StorageProvider.values()),
            )
            provider = StorageProvider.LOCAL

        match provider:
            case StorageProvider.LOCAL:
                from contentstore.infrastructure.external.storage.local_storage import (
                    LocalStorageService,
                )

                return LocalStorageService(
                    base_path=s.storage_local_path,
                    base_url=s.storage_local_base_url,
                )
            case StorageProvider.S3:
                from contentstore.infrastructure.external.storage.s3_storage import (
                    S3StorageService,
                )

                return S3StorageService(
                    bucket=s.storage_s3_bucket,
                    access_key=s.storage_s3_access_key_id,
                    secret_key=_secret(s.storage_s3_secret_access_key),
                    region=s.storage_s3_region,
                    endpoint_url=s.storage_s3_endpoint,
                    force_path_style=s.storage_s3_force_path_style,
                    signed_url_expires=s.storage_s3_signed_url_expires,
                )
            case StorageProvider.BACKBLAZE_B2:
                from contentstore.infrastructure.external.storage.b2_storage import (
                    B2StorageService,
                )

                return B2StorageService(
                    application_key_id=s.backblaze_application_key_id,
                    application_key=_secret(s.backblaze_application_key),
                    bucket_id=s.backblaze_bucket_id,
                    bucket_name=s.backblaze_bucket_name,
                    endpoint=s.backblaze_endpoint,
                    max_retries=s.backblaze_max_retries,
                    retry_delay=s.backblaze_retry_delay,
                    tenant_prefix=s.app_abbreviation,
                    timeout=s.backblaze_timeout_seconds,
                )


@lru_cache
def get_storage() -> StorageProtocol:
    """Return the process-wide storage service built from get_settings().

    In tests, call get_storage.cache_clear() together with
    get_settings.cache_clear().
    """
    storage = StorageFactory.create_storage_service()
    logger.info("Storage provider ready: %s", type(storage).__name__)
    return storage
