"""Unit tests for StorageFactory provider selection and get_storage()."""

import pytest

from contentstore.infrastructure.exceptions import StorageConfigurationError
from contentstore.infrastructure.external.storage.b2_storage import B2StorageService
from contentstore.infrastructure.external.storage.factory import (
    StorageFactory,
    get_storage,
)
from contentstore.infrastructure.external.storage.local_storage import (
    LocalStorageService,
)
from contentstore.infrastructure.external.storage.s3_storage import S3StorageService


class TestStorageFactory:
    """Provider selection from settings."""

    @pytest.mark.parametrize("value", ["local", "", "ftp", "  LOCAL "])
    def test_local_or_fallback(self, make_settings, value: str) -> None:
        service = StorageFactory.create_storage_service(make_settings(storage_provider=value))
        assert isinstance(service, LocalStorageService)

    def test_unknown_provider_logs_warning(self, make_settings, caplog) -> None:
        with caplog.at_level("WARNING"):
            StorageFactory.create_storage_service(make_settings(storage_provider="gcs"))
        assert "falling back to local" in caplog.text

    def test_s3_selected(self, make_settings) -> None:
        settings = make_settings(
            storage_provider="S3",
            storage_s3_bucket="bucket",
            storage_s3_access_key_id="AKIA",
            storage_s3_secret_access_key="secret",
            storage_s3_endpoint="http://localhost:9000",
        )
        service = StorageFactory.create_storage_service(settings)
        assert isinstance(service, S3StorageService)
        assert service.bucket == "bucket"

    def test_s3_missing_credentials_fail_fast(self, make_settings) -> None:
        with pytest.raises(StorageConfigurationError):
            StorageFactory.create_storage_service(make_settings(storage_provider="s3"))

    @pytest.mark.parametrize("value", ["backblaze-b2", "b2", "Backblaze-B2"])
    async def test_b2_selected(self, make_settings, value: str) -> None:
        settings = make_settings(
            storage_provider=value,
            backblaze_application_key_id="key-id",
            backblaze_application_key="secret-key",
            backblaze_bucket_id="bucket-id",
            backblaze_bucket_name="bucket",
            app_abbreviation="acme",
        )
        service = StorageFactory.create_storage_service(settings)
        try:
            assert isinstance(service, B2StorageService)
            assert service.tenant_prefix == "acme"
        finally:
            await service.aclose()

    def test_b2_missing_credentials_fail_fast(self, make_settings) -> None:
        with pytest.raises(StorageConfigurationError) as exc_info:
            StorageFactory.create_storage_service(make_settings(storage_provider="b2"))
        assert "BACKBLAZE_BUCKET_ID" in exc_info.value.details["missing"]


class TestGetStorage:
    """Process-wide singleton."""

    def test_singleton_from_environment(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("STORAGE_PROVIDER", "local")
        monkeypatch.setenv("STORAGE_LOCAL_PATH", str(tmp_path / "store"))

        first = get_storage()

        assert isinstance(first, LocalStorageService)
        assert first is get_storage()
        assert first.base_path == (tmp_path / "store").resolve()
