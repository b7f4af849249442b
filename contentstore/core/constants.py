"""Core constants shared by the storage providers.

Single source of truth for literal values used across providers and tests.
"""

from datetime import timedelta

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Local provider sidecar suffix: "<key>.meta"
METADATA_SIDECAR_SUFFIX = ".meta"

# Backblaze B2 native API
B2_API_VERSION_PATH = "/b2api/v2"
B2_ACCOUNT_SESSION_TTL = timedelta(hours=23)
B2_DEFAULT_DOWNLOAD_AUTH_SECONDS = 900
B2_METADATA_HEADER_PREFIX = "X-Bz-Info-"
B2_METADATA_VALUE_MAX_LENGTH = 100
B2_USER_AGENT = "contentstore-b2-client/1.0"
