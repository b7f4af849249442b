"""Backblaze B2 storage over the native B2 HTTP API.

Keys are mapped to physical names under the tenant prefix before reaching
B2; results carry the caller's logical key. Every network call goes through
``with_retries``. Credentials are held by B2SessionManager.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from contentstore.core.constants import (
    B2_API_VERSION_PATH,
    B2_DEFAULT_DOWNLOAD_AUTH_SECONDS,
    B2_METADATA_HEADER_PREFIX,
    B2_METADATA_VALUE_MAX_LENGTH,
    B2_USER_AGENT,
    DEFAULT_CONTENT_TYPE,
)
from contentstore.domain.value_objects import to_physical
from contentstore.infrastructure.exceptions import (
    StorageAuthenticationError,
    StorageConfigurationError,
    StorageCopyError,
    StorageDeleteError,
    StorageDownloadError,
    StorageNotFoundError,
    StorageUploadError,
    StorageUrlError,
)
from contentstore.infrastructure.external.storage.b2_session import (
    PROVIDER_NAME,
    B2SessionManager,
    UploadSession,
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
from contentstore.infrastructure.external.storage.retry import with_retries
from contentstore.shared.enums import PresignOperation, UploadFailureKind
from contentstore.shared.telemetry.logging import get_logger
from contentstore.shared.telemetry.tracing import (
    add_span_attributes,
    add_span_event,
    traced,
)
from contentstore.shared.utils.datetime import from_timestamp_ms_utc, utc_now
from contentstore.shared.utils.masking import mask_secret

logger = get_logger(__name__)

_SPAN_ATTRS = {"storage.provider": "backblaze-b2"}
_WHITESPACE_RUN = re.compile(r"\s+")
_DISALLOWED_METADATA_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_metadata_value(value: Any) -> str:
    """Reduce a metadata value to a header-safe token.

    Trims, turns whitespace runs into "_", removes anything outside
    ``[A-Za-z0-9_-]`` and truncates to 100 characters. May return "".
    """
    text = _WHITESPACE_RUN.sub("_", str(value).strip())
    text = _DISALLOWED_METADATA_CHARS.sub("", text)
    return text[:B2_METADATA_VALUE_MAX_LENGTH]


def build_metadata_headers(metadata: dict[str, Any] | None) -> dict[str, str]:
    """Map metadata to ``X-Bz-Info-*`` headers, dropping None and empty values."""
    headers: dict[str, str] = {}
    for name, value in (metadata or {}).items():
        if value is None:
            continue
        sanitized = sanitize_metadata_value(value)
        if sanitized:
            headers[f"{B2_METADATA_HEADER_PREFIX}{name}"] = sanitized
    return headers


def classify_upload_failure(error: BaseException) -> UploadFailureKind:
    """Classify an upload failure for diagnostic logging."""
    if isinstance(error, httpx.TimeoutException):
        return UploadFailureKind.TIMEOUT
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 400:
            return UploadFailureKind.BAD_REQUEST
        if status == 401:
            return UploadFailureKind.UNAUTHORIZED
        if status == 403:
            return UploadFailureKind.FORBIDDEN
        if status >= 500:
            return UploadFailureKind.SERVER_ERROR
    return UploadFailureKind.UNKNOWN


def _is_not_found(error: BaseException) -> bool:
    return (
        isinstance(error, httpx.HTTPStatusError)
        and error.response.status_code == 404
    )


class B2StorageService:
    """Backblaze B2 storage with session management, retries, and a tenant prefix.

    Owns an httpx.AsyncClient unless one is injected; close it with
    ``aclose()`` or use the service as an async context manager.
    """

    generate_key = staticmethod(generate_key)
    get_file_extension = staticmethod(get_file_extension)

    def __init__(
        self,
        application_key_id: str | None,
        application_key: str | None,
        bucket_id: str | None,
        bucket_name: str | None,
        endpoint: str = "https://api.backblazeb2.com",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        tenant_prefix: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the B2 client.

        Args:
            application_key_id: B2 application key id (required).
            application_key: B2 application key (required).
            bucket_id: Target bucket id (required).
            bucket_name: Target bucket name, used in download URLs (required).
            endpoint: Authorization endpoint.
            max_retries: Attempts per network call.
            retry_delay: Base linear backoff in seconds.
            tenant_prefix: Leading path segment for every physical key.
            timeout: HTTP timeout in seconds for the owned client.
            client: Prebuilt httpx.AsyncClient (tests).
            clock: UTC clock used for session expiry.
            sleep: Awaitable sleep used between retries.

        Raises:
            StorageConfigurationError: If credentials or bucket are missing.
        """
        missing = [
            name
            for name, value in (
                ("BACKBLAZE_APPLICATION_KEY_ID", application_key_id),
                ("BACKBLAZE_APPLICATION_KEY", application_key),
                ("BACKBLAZE_BUCKET_ID", bucket_id),
                ("BACKBLAZE_BUCKET_NAME", bucket_name),
            )
            if not value
        ]
        if missing:
            raise StorageConfigurationError(PROVIDER_NAME, missing)

        self.bucket_id = bucket_id
        self.bucket_name = bucket_name
        self.tenant_prefix = tenant_prefix or None
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, headers={"User-Agent": B2_USER_AGENT}
        )
        self._sessions = B2SessionManager(
            self._client,
            endpoint,
            application_key_id,  # type: ignore[arg-type]
            application_key,  # type: ignore[arg-type]
            bucket_id,  # type: ignore[arg-type]
            max_retries=max_retries,
            retry_delay=retry_delay,
            clock=clock,
            sleep=sleep,
        )
        logger.info(
            "B2 storage initialized with bucket: %s (key id %s)",
            bucket_name,
            mask_secret(application_key_id),
        )

    @property
    def sessions(self) -> B2SessionManager:
        return self._sessions

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "B2StorageService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _physical(self, key: str) -> str:
        return to_physical(key, self.tenant_prefix).value

    def _file_url(self, download_url: str, physical: str) -> str:
        return f"{download_url}/file/{self.bucket_name}/{physical}"

    async def _retry(self, operation: Callable[[], Awaitable[Any]], description: str) -> Any:
        return await with_retries(
            operation,
            self.max_retries,
            self.retry_delay,
            description=description,
            sleep=self._sleep,
        )

    async def _api(
        self,
        name: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call an account-authorized API endpoint under the retry policy.

        POSTs ``payload`` as JSON when given, otherwise GETs with ``params``.
        The account session is acquired once, before the first attempt.
        """
        account = await self._sessions.account_session()
        url = f"{account.api_url}{B2_API_VERSION_PATH}/{name}"
        headers = {"Authorization": account.authorization_token}

        async def _call() -> dict[str, Any]:
            if payload is not None:
                resp = await self._client.post(url, json=payload, headers=headers)
            else:
                resp = await self._client.get(url, params=params, headers=headers)
            resp.raise_for_status()
            return resp.json()

        return await self._retry(_call, f"B2 {name}")

    async def _find_file(self, physical: str) -> dict[str, Any] | None:
        """Return the file entry whose fileName equals ``physical``, or None."""
        data = await self._api(
            "b2_list_file_names",
            params={"bucketId": self.bucket_id, "prefix": physical, "maxFileCount": 1},
        )
        for entry in data.get("files", []):
            if entry.get("fileName") == physical:
                return entry
        return None

    async def _post_upload(
        self,
        session: UploadSession,
        data: bytes,
        physical: str,
        sha1: str,
        content_type: str,
        info_headers: dict[str, str],
        description: str,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": session.authorization_token,
            "X-Bz-File-Name": quote(physical, safe="/"),
            "X-Bz-Content-Sha1": sha1,
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
            **info_headers,
        }

        async def _call() -> dict[str, Any]:
            resp = await self._client.post(session.upload_url, content=data, headers=headers)
            resp.raise_for_status()
            return resp.json()

        return await self._retry(_call, description)

    @traced("storage.b2.upload", _SPAN_ATTRS)
    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Upload under the tenant prefix.

        If the upload (with retries) fails, a fresh upload URL is fetched and
        the file is resubmitted once more without metadata headers.

        Raises:
            StorageUploadError: If both the upload and the fallback fail.
            StorageAuthenticationError: If B2 rejects the credentials.
        """
        physical = self._physical(key)
        resolved_type = content_type or DEFAULT_CONTENT_TYPE
        sha1 = hashlib.sha1(data).hexdigest()
        info_headers = build_metadata_headers(metadata)
        add_span_attributes(
            **{"b2.physical_key": physical, "b2.metadata_headers": len(info_headers)}
        )

        try:
            account = await self._sessions.account_session()
            session = await self._sessions.upload_session()
            try:
                body = await self._post_upload(
                    session, data, physical, sha1, resolved_type, info_headers, "B2 upload"
                )
            except Exception as first_error:
                kind = classify_upload_failure(first_error).value
                logger.warning(
                    "B2 upload of %s failed (%s), retrying without metadata: %s",
                    key,
                    kind,
                    first_error,
                )
                add_span_event("b2.upload.fallback", {"failure_kind": kind})
                session = await self._sessions.upload_session(force=True)
                body = await self._post_upload(
                    session,
                    data,
                    physical,
                    sha1,
                    resolved_type,
                    {},
                    "B2 upload without metadata",
                )
        except StorageAuthenticationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to upload file %s (%s): %s",
                key,
                classify_upload_failure(e).value,
                e,
            )
            raise StorageUploadError(key, str(e)) from e

        logger.debug("File uploaded successfully: %s", physical)
        return UploadResult(
            key=key,
            url=self._file_url(account.download_url, physical),
            size=len(data),
            etag=body.get("contentSha1"),
            content_type=resolved_type,
        )

    @traced("storage.b2.download", _SPAN_ATTRS)
    async def download(self, key: str) -> DownloadResult:
        """Fetch the file by name with the account token."""
        physical = self._physical(key)
        account = await self._sessions.account_session()
        url = self._file_url(account.download_url, physical)

        async def _call() -> httpx.Response:
            resp = await self._client.get(
                url, headers={"Authorization": account.authorization_token}
            )
            resp.raise_for_status()
            return resp

        try:
            resp = await self._retry(_call, "B2 download")
        except Exception as e:
            if _is_not_found(e):
                raise StorageNotFoundError(key) from e
            logger.error("Failed to download file %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e

        length = resp.headers.get("content-length")
        return DownloadResult(
            data=resp.content,
            content_type=resp.headers.get("content-type"),
            content_length=int(length) if length else len(resp.content),
            etag=resp.headers.get("x-bz-content-sha1"),
        )

    @traced("storage.b2.delete", _SPAN_ATTRS)
    async def delete(self, key: str) -> None:
        """Delete the file version. A missing file is logged and ignored."""
        physical = self._physical(key)
        try:
            entry = await self._find_file(physical)
            if entry is None:
                logger.warning("B2 delete skipped, file not found: %s", physical)
                return
            await self._api(
                "b2_delete_file_version",
                {"fileName": physical, "fileId": entry["fileId"]},
            )
        except StorageAuthenticationError:
            raise
        except Exception as e:
            logger.error("Failed to delete file %s: %s", key, e)
            raise StorageDeleteError(key, str(e)) from e
        logger.debug("File deleted successfully: %s", physical)

    @traced("storage.b2.exists", _SPAN_ATTRS)
    async def exists(self, key: str) -> bool:
        """True if the file is listed. Lookup failures count as absent."""
        try:
            return await self._find_file(self._physical(key)) is not None
        except Exception as e:
            logger.debug("B2 existence check for %s failed: %s", key, e)
            return False

    async def get_url(self, key: str, expires_in: int | None = None) -> str:
        """Public download URL, or a presigned GET URL when expires_in is given."""
        if expires_in is not None:
            return await self.generate_presigned_url(key, PresignOperation.GET, expires_in)
        account = await self._sessions.account_session()
        return self._file_url(account.download_url, self._physical(key))

    @traced("storage.b2.get_metadata", _SPAN_ATTRS)
    async def get_metadata(self, key: str) -> FileMetadata:
        """Metadata from the b2_list_file_names entry."""
        physical = self._physical(key)
        try:
            entry = await self._find_file(physical)
        except StorageAuthenticationError:
            raise
        except Exception as e:
            logger.error("Failed to get metadata for %s: %s", key, e)
            raise StorageDownloadError(key, str(e)) from e
        if entry is None:
            raise StorageNotFoundError(key)

        uploaded = entry.get("uploadTimestamp")
        return FileMetadata(
            size=entry.get("contentLength") or 0,
            content_type=entry.get("contentType") or DEFAULT_CONTENT_TYPE,
            last_modified=from_timestamp_ms_utc(uploaded) if uploaded else utc_now(),
            etag=entry.get("contentSha1"),
            metadata=entry.get("fileInfo") or {},
        )

    @traced("storage.b2.copy", _SPAN_ATTRS)
    async def copy(self, source_key: str, destination_key: str) -> None:
        """Server-side b2_copy_file within the bucket."""
        source = self._physical(source_key)
        destination = self._physical(destination_key)
        try:
            entry = await self._find_file(source)
            if entry is None:
                raise StorageNotFoundError(source_key)
            await self._api(
                "b2_copy_file",
                {
                    "sourceFileId": entry["fileId"],
                    "destinationBucketId": self.bucket_id,
                    "destinationFileName": destination,
                },
            )
        except (StorageNotFoundError, StorageAuthenticationError):
            raise
        except Exception as e:
            logger.error(
                "Failed to copy file from %s to %s: %s", source_key, destination_key, e
            )
            raise StorageCopyError(source_key, destination_key, str(e)) from e
        logger.debug("File copied from %s to %s", source, destination)

    @traced("storage.b2.generate_presigned_url", _SPAN_ATTRS)
    async def generate_presigned_url(
        self,
        key: str,
        operation: PresignOperation | str,
        expires_in: int | None = None,
    ) -> str:
        """Time-limited download URL, or the current upload URL for PUT.

        The PUT URL is the bucket's upload URL and is not scoped to ``key``.

        Raises:
            StorageNotFoundError: For GET when the file does not exist.
            StorageUrlError: If B2 refuses the download authorization.
        """
        op = PresignOperation(operation)
        if op is PresignOperation.PUT:
            try:
                session = await self._sessions.upload_session()
            except StorageAuthenticationError:
                raise
            except Exception as e:
                logger.error("Failed to get B2 upload URL for %s: %s", key, e)
                raise StorageUrlError(key, str(e)) from e
            return session.upload_url

        physical = self._physical(key)
        try:
            entry = await self._find_file(physical)
            if entry is None:
                raise StorageNotFoundError(key)
            data = await self._api(
                "b2_get_download_authorization",
                {
                    "bucketId": self.bucket_id,
                    "fileNamePrefix": physical,
                    "validDurationInSeconds": (
                        B2_DEFAULT_DOWNLOAD_AUTH_SECONDS if expires_in is None else expires_in
                    ),
                },
            )
            account = await self._sessions.account_session()
            token = data["authorizationToken"]
        except (StorageNotFoundError, StorageAuthenticationError):
            raise
        except Exception as e:
            logger.error("Failed to generate presigned URL for %s: %s", key, e)
            raise StorageUrlError(key, str(e)) from e

        return f"{self._file_url(account.download_url, physical)}?Authorization={token}"
