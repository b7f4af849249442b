"""Storage configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Settings are built once per process and are immutable.
Provider credentials are not validated here: selecting a provider never
fails, and each provider checks its own required fields at construction.
"""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment and .env.

    Field names match the environment variable names (case-insensitive),
    e.g. STORAGE_PROVIDER, BACKBLAZE_BUCKET_ID, APP_ABBREVIATION.
    """

    # App
    app_name: str = "contentstore"
    app_version: str = "1.0.0"
    debug: bool = False

    # Provider selector: local | s3 | backblaze-b2 (anything else falls back to local)
    storage_provider: str = "local"

    # Local filesystem
    storage_local_path: str = "./uploads"
    storage_local_base_url: str = "http://localhost:3000/uploads"

    # S3 / MinIO
    storage_s3_endpoint: str | None = None
    storage_s3_region: str = "us-east-1"
    storage_s3_bucket: str | None = None
    storage_s3_access_key_id: str | None = None
    storage_s3_secret_access_key: SecretStr | None = None
    storage_s3_force_path_style: bool = True
    storage_s3_signed_url_expires: int = Field(default=86400, gt=0)  # 24 hours

    # Backblaze B2
    backblaze_application_key_id: str | None = None
    backblaze_application_key: SecretStr | None = None
    backblaze_bucket_id: str | None = None
    backblaze_bucket_name: str | None = None
    backblaze_endpoint: str = "https://api.backblazeb2.com"
    backblaze_max_retries: int = Field(default=3, ge=1)
    backblaze_retry_delay: float = Field(default=1.0, ge=0)  # seconds
    backblaze_timeout_seconds: float = 60.0

    # Tenant key prefix (B2 only): stored names become "<prefix>/<key>"
    app_abbreviation: str = ""

    # Upload policy (enforced by the calling layer)
    max_upload_size: int = 100 * 1024 * 1024  # 100MB
    allowed_mime_types: str = "*/*"

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @property
    def allowed_mime_type_list(self) -> list[str]:
        """allowed_mime_types split on commas, blanks removed."""
        return [t.strip() for t in self.allowed_mime_types.split(",") if t.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
