"""Backblaze B2 credential state: account and upload sessions.

Two independently lived credentials:

* AccountSession, from b2_authorize_account, valid 23 hours from acquisition.
* UploadSession, from b2_get_upload_url, valid for as long as it is held.
  It is replaced only when missing or when the caller forces a refresh after
  a failed upload. It is never expired by the clock.

B2SessionManager owns both and exposes acquire-or-refresh methods. Refreshes
are serialized with an asyncio.Lock so concurrent callers that observe a
stale session share one refresh.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import httpx

from contentstore.core.constants import B2_ACCOUNT_SESSION_TTL, B2_API_VERSION_PATH
from contentstore.infrastructure.exceptions import StorageAuthenticationError
from contentstore.infrastructure.external.storage.retry import with_retries
from contentstore.shared.telemetry.logging import get_logger
from contentstore.shared.utils.datetime import utc_now
from contentstore.shared.utils.masking import mask_secret

logger = get_logger(__name__)

PROVIDER_NAME = "Backblaze B2"


@dataclass(frozen=True)
class AccountSession:
    """Account-level authorization from b2_authorize_account."""

    authorization_token: str
    api_url: str
    download_url: str
    authorized_at: datetime
    account_id: str | None = None
    allowed: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime, ttl: timedelta = B2_ACCOUNT_SESSION_TTL) -> bool:
        """True once more than ``ttl`` has elapsed since authorization."""
        return now - self.authorized_at > ttl


@dataclass(frozen=True)
class UploadSession:
    """Bucket-scoped upload URL and its bearer token."""

    upload_url: str
    authorization_token: str


class B2SessionManager:
    """Acquire-or-refresh access to the account and upload sessions."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        application_key_id: str,
        application_key: str,
        bucket_id: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._endpoint = endpoint.rstrip("/")
        self._application_key_id = application_key_id
        self._application_key = application_key
        self._bucket_id = bucket_id
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._clock = clock
        self._sleep = sleep
        self._account: AccountSession | None = None
        self._upload: UploadSession | None = None
        self._account_lock = asyncio.Lock()
        self._upload_lock = asyncio.Lock()

    @property
    def cached_account_session(self) -> AccountSession | None:
        return self._account

    @cached_account_session.setter
    def cached_account_session(self, session: AccountSession | None) -> None:
        self._account = session

    @property
    def cached_upload_session(self) -> UploadSession | None:
        return self._upload

    def _account_is_fresh(self, session: AccountSession | None) -> bool:
        return session is not None and not session.is_expired(self._clock())

    async def account_session(self) -> AccountSession:
        """Return the account session, authorizing first if missing or expired."""
        session = self._account
        if self._account_is_fresh(session):
            return session  # type: ignore[return-value]
        async with self._account_lock:
            if not self._account_is_fresh(self._account):
                self._account = await self._authorize()
            return self._account  # type: ignore[return-value]

    async def upload_session(self, force: bool = False) -> UploadSession:
        """Return the upload session, fetching one if missing.

        Args:
            force: Replace the session held when the call started, even if present.
        """
        observed = self._upload
        if observed is not None and not force:
            return observed
        async with self._upload_lock:
            current = self._upload
            if current is not None and (not force or current is not observed):
                return current
            self._upload = await self._fetch_upload_session()
            return self._upload

    async def _authorize(self) -> AccountSession:
        credentials = f"{self._application_key_id}:{self._application_key}".encode()
        auth_header = f"Basic {base64.b64encode(credentials).decode()}"
        url = f"{self._endpoint}{B2_API_VERSION_PATH}/b2_authorize_account"
        logger.info(
            "Authorizing B2 account (key id %s) at %s",
            mask_secret(self._application_key_id),
            self._endpoint,
        )

        async def _call() -> dict[str, Any]:
            resp = await self._client.get(url, headers={"Authorization": auth_header})
            resp.raise_for_status()
            return resp.json()

        try:
            data = await with_retries(
                _call,
                self._max_retries,
                self._retry_delay,
                description="B2 account authorization",
                sleep=self._sleep,
            )
            session = AccountSession(
                authorization_token=data["authorizationToken"],
                api_url=data["apiUrl"].rstrip("/"),
                download_url=data["downloadUrl"].rstrip("/"),
                authorized_at=self._clock(),
                account_id=data.get("accountId"),
                allowed=data.get("allowed") or {},
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("B2 account authorization failed: %s", e)
            raise StorageAuthenticationError(PROVIDER_NAME, str(e)) from e

        logger.debug(
            "B2 account authorized: account=%s api=%s token=%s",
            session.account_id,
            session.api_url,
            mask_secret(session.authorization_token),
        )
        return session

    async def _fetch_upload_session(self) -> UploadSession:
        """Request an upload URL under the retry policy.

        Raises:
            StorageAuthenticationError: If B2 answers 401 or 403. Other
                failures propagate unchanged for the caller to wrap.
        """
        account = await self.account_session()
        url = f"{account.api_url}{B2_API_VERSION_PATH}/b2_get_upload_url"

        async def _call() -> dict[str, Any]:
            resp = await self._client.post(
                url,
                json={"bucketId": self._bucket_id},
                headers={"Authorization": account.authorization_token},
            )
            resp.raise_for_status()
            return resp.json()

        try:
            data = await with_retries(
                _call,
                self._max_retries,
                self._retry_delay,
                description="B2 upload URL request",
                sleep=self._sleep,
            )
        except httpx.HTTPStatusError as e:
            logger.error("Failed to get B2 upload URL: %s", e)
            if e.response.status_code in (401, 403):
                raise StorageAuthenticationError(
                    PROVIDER_NAME, f"upload URL request failed: {e}"
                ) from e
            raise
        session = UploadSession(
            upload_url=data["uploadUrl"],
            authorization_token=data["authorizationToken"],
        )

        logger.debug(
            "B2 upload URL obtained: token=%s", mask_secret(session.authorization_token)
        )
        return session
