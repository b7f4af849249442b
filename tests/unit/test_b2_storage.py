"""Unit tests for B2StorageService against an in-memory B2 API (httpx.MockTransport)."""

import asyncio
import hashlib
import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from urllib.parse import unquote

import httpx
import pytest

from contentstore.infrastructure.exceptions import (
    StorageAuthenticationError,
    StorageConfigurationError,
    StorageNotFoundError,
    StorageUploadError,
    StorageUrlError,
)
from contentstore.infrastructure.external.storage.b2_storage import (
    B2StorageService,
    build_metadata_headers,
    classify_upload_failure,
    sanitize_metadata_value,
)
from contentstore.shared.enums import UploadFailureKind

API = "https://api.b2.test"
DOWNLOAD = "https://f000.b2.test"


class FakeB2:
    """Minimal B2 native API: one bucket, file names as keys."""

    def __init__(self) -> None:
        self.files: dict[str, dict] = {}
        self.calls: list[str] = []
        self.upload_requests: list[httpx.Request] = []
        self.api_payloads: dict[str, list[dict]] = {}
        self.auth_count = 0
        self.upload_url_count = 0
        self.reject_auth = False
        self.reject_metadata = False
        self.fail_uploads = False
        self.fail_list = False
        self.upload_url_status: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        name = path.rsplit("/", 1)[-1]
        self.calls.append(name)

        if path == "/b2api/v2/b2_authorize_account":
            self.auth_count += 1
            if self.reject_auth:
                return httpx.Response(401, json={"code": "unauthorized"})
            assert request.headers["Authorization"].startswith("Basic ")
            return httpx.Response(
                200,
                json={
                    "accountId": "acc-1",
                    "authorizationToken": f"acct-token-{self.auth_count}",
                    "apiUrl": API,
                    "downloadUrl": DOWNLOAD,
                    "allowed": {"bucketId": "bucket-id"},
                },
            )
        if request.url.host == "pod.b2.test":
            return self._upload(request)
        if path.startswith("/file/bucket/"):
            return self._download(request, path[len("/file/bucket/"):])

        assert request.headers["Authorization"].startswith("acct-token-")
        payload = json.loads(request.content) if request.content else {}
        self.api_payloads.setdefault(name, []).append(payload)

        if name == "b2_get_upload_url":
            self.upload_url_count += 1
            if self.upload_url_status is not None:
                return httpx.Response(self.upload_url_status, json={"code": "unavailable"})
            n = self.upload_url_count
            return httpx.Response(
                200,
                json={
                    "bucketId": payload["bucketId"],
                    "uploadUrl": f"https://pod.b2.test/upload/{n}",
                    "authorizationToken": f"upload-token-{n}",
                },
            )
        if name == "b2_list_file_names":
            if self.fail_list:
                return httpx.Response(500, json={"code": "internal_error"})
            prefix = request.url.params["prefix"]
            names = sorted(n for n in self.files if n.startswith(prefix))
            return httpx.Response(200, json={"files": [self.files[n] for n in names[:1]]})
        if name == "b2_delete_file_version":
            del self.files[payload["fileName"]]
            return httpx.Response(200, json=payload)
        if name == "b2_copy_file":
            source = next(f for f in self.files.values() if f["fileId"] == payload["sourceFileId"])
            destination = payload["destinationFileName"]
            self.files[destination] = {**source, "fileName": destination, "fileId": f"id-{destination}"}
            return httpx.Response(200, json=self.files[destination])
        if name == "b2_get_download_authorization":
            return httpx.Response(200, json={"authorizationToken": "dl-token"})
        return httpx.Response(404, json={"code": "not_found"})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        self.upload_requests.append(request)
        info = {
            k[len("x-bz-info-"):]: v
            for k, v in request.headers.items()
            if k.lower().startswith("x-bz-info-")
        }
        if self.fail_uploads or (self.reject_metadata and info):
            return httpx.Response(400, json={"code": "bad_request"})
        token = request.url.path.rsplit("/", 1)[-1]
        assert request.headers["Authorization"] == f"upload-token-{token}"
        name = unquote(request.headers["X-Bz-File-Name"])
        body = request.content
        assert hashlib.sha1(body).hexdigest() == request.headers["X-Bz-Content-Sha1"]
        self.files[name] = {
            "fileId": f"id-{name}",
            "fileName": name,
            "contentLength": len(body),
            "contentType": request.headers["Content-Type"],
            "contentSha1": request.headers["X-Bz-Content-Sha1"],
            "fileInfo": info,
            "uploadTimestamp": 1_700_000_000_000,
            "body": body,
        }
        return httpx.Response(200, json={k: v for k, v in self.files[name].items() if k != "body"})

    def _download(self, request: httpx.Request, name: str) -> httpx.Response:
        entry = self.files.get(name)
        if entry is None:
            return httpx.Response(404, json={"code": "not_found"})
        return httpx.Response(
            200,
            content=entry["body"],
            headers={
                "Content-Type": entry["contentType"],
                "X-Bz-Content-Sha1": entry["contentSha1"],
            },
        )


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def fake() -> FakeB2:
    return FakeB2()


@pytest.fixture
def make_storage(fake: FakeB2):
    def _make(**overrides) -> B2StorageService:
        options = {
            "application_key_id": "key-id",
            "application_key": "application-key-secret",
            "bucket_id": "bucket-id",
            "bucket_name": "bucket",
            "max_retries": 3,
            "retry_delay": 0,
            "client": httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)),
            "sleep": _no_sleep,
        }
        options.update(overrides)
        return B2StorageService(**options)

    return _make


@pytest.fixture
def storage(make_storage) -> B2StorageService:
    return make_storage()


class TestMetadataSanitization:
    """sanitize_metadata_value / build_metadata_headers."""

    def test_non_word_characters_stripped(self) -> None:
        assert sanitize_metadata_value("héllo world!") == "hllo_world"

    def test_trimmed_and_whitespace_collapsed(self) -> None:
        assert sanitize_metadata_value("  a \t b  ") == "a_b"

    def test_truncated_to_100(self) -> None:
        assert len(sanitize_metadata_value("x" * 150)) == 100

    def test_non_strings_stringified(self) -> None:
        assert sanitize_metadata_value(42) == "42"

    def test_empty_and_none_values_dropped(self) -> None:
        headers = build_metadata_headers({"a": "!!!", "b": None, "c": "ok"})
        assert headers == {"X-Bz-Info-c": "ok"}


class TestClassifyUploadFailure:
    """classify_upload_failure."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (400, UploadFailureKind.BAD_REQUEST),
            (401, UploadFailureKind.UNAUTHORIZED),
            (403, UploadFailureKind.FORBIDDEN),
            (503, UploadFailureKind.SERVER_ERROR),
            (409, UploadFailureKind.UNKNOWN),
        ],
    )
    def test_status_codes(self, status: int, kind: UploadFailureKind) -> None:
        request = httpx.Request("POST", "https://pod.b2.test/upload/1")
        error = httpx.HTTPStatusError(
            "failed", request=request, response=httpx.Response(status, request=request)
        )
        assert classify_upload_failure(error) is kind

    def test_timeout(self) -> None:
        assert classify_upload_failure(httpx.ReadTimeout("slow")) is UploadFailureKind.TIMEOUT

    def test_other(self) -> None:
        assert classify_upload_failure(RuntimeError("x")) is UploadFailureKind.UNKNOWN


class TestB2Configuration:
    """Construction-time validation."""

    def test_missing_credentials(self) -> None:
        with pytest.raises(StorageConfigurationError) as exc_info:
            B2StorageService(
                application_key_id="id",
                application_key=None,
                bucket_id="bucket-id",
                bucket_name=None,
            )
        assert exc_info.value.details["missing"] == [
            "BACKBLAZE_APPLICATION_KEY",
            "BACKBLAZE_BUCKET_NAME",
        ]


class TestB2Upload:
    """Upload algorithm."""

    async def test_upload_round_trip(self, storage: B2StorageService, fake: FakeB2) -> None:
        result = await storage.upload("docs/a.txt", b"hello", content_type="text/plain")

        assert result.key == "docs/a.txt"
        assert result.size == 5
        assert result.url == f"{DOWNLOAD}/file/bucket/docs/a.txt"
        assert result.etag == hashlib.sha1(b"hello").hexdigest()
        assert fake.auth_count == 1
        assert fake.upload_url_count == 1

        downloaded = await storage.download("docs/a.txt")
        assert downloaded.data == b"hello"
        assert downloaded.content_type == "text/plain"
        assert downloaded.content_length == 5
        assert downloaded.etag == result.etag

    async def test_tenant_prefix_is_hidden_from_caller(
        self, make_storage, fake: FakeB2
    ) -> None:
        storage = make_storage(tenant_prefix="acme")

        result = await storage.upload("docs/a.txt", b"x")

        assert "acme/docs/a.txt" in fake.files
        assert result.key == "docs/a.txt"
        assert result.url == f"{DOWNLOAD}/file/bucket/acme/docs/a.txt"
        assert await storage.exists("docs/a.txt") is True

    async def test_file_name_header_percent_encoded(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        await storage.upload("docs/my file.txt", b"x")

        assert fake.upload_requests[0].headers["X-Bz-File-Name"] == "docs/my%20file.txt"
        assert "docs/my file.txt" in fake.files

    async def test_metadata_headers_sanitized(self, storage: B2StorageService, fake: FakeB2) -> None:
        await storage.upload(
            "a.txt",
            b"x",
            metadata={"note": "héllo world!", "empty": "???", "long": "y" * 150},
        )

        headers = fake.upload_requests[0].headers
        assert headers["X-Bz-Info-note"] == "hllo_world"
        assert "X-Bz-Info-empty" not in headers
        assert len(headers["X-Bz-Info-long"]) == 100
        assert headers["Content-Type"] == "application/octet-stream"

    async def test_fallback_without_metadata_uses_fresh_upload_session(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        fake.reject_metadata = True

        result = await storage.upload("a.txt", b"x", metadata={"owner": "u1"})

        assert result.key == "a.txt"
        assert len(fake.upload_requests) == 4
        assert fake.upload_url_count == 2
        last = fake.upload_requests[-1]
        assert last.headers["Authorization"] == "upload-token-2"
        assert not any(k.lower().startswith("x-bz-info-") for k in last.headers)
        assert fake.files["a.txt"]["fileInfo"] == {}

    async def test_upload_failure_after_fallback(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        fake.fail_uploads = True

        with pytest.raises(StorageUploadError) as exc_info:
            await storage.upload("a.txt", b"x")

        assert len(fake.upload_requests) == 6
        assert exc_info.value.error_code == "STORAGE_UPLOAD_ERROR"
        assert exc_info.value.message.startswith("Failed to upload file:")

    async def test_authorization_failure(self, storage: B2StorageService, fake: FakeB2) -> None:
        fake.reject_auth = True

        with pytest.raises(StorageAuthenticationError):
            await storage.upload("a.txt", b"x")
        assert fake.auth_count == 3

    async def test_upload_url_server_error_is_upload_failure(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        fake.upload_url_status = 503

        with pytest.raises(StorageUploadError) as exc_info:
            await storage.upload("a.txt", b"x")

        assert fake.upload_url_count == 3
        assert "503" in exc_info.value.message
        assert fake.upload_requests == []

    async def test_upload_url_unauthorized_is_authentication_error(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        fake.upload_url_status = 401

        with pytest.raises(StorageAuthenticationError):
            await storage.upload("a.txt", b"x")
        assert fake.upload_url_count == 3


class TestB2Sessions:
    """Account and upload session lifetimes."""

    async def test_expired_account_session_reauthorizes_once(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        await storage.upload("a.txt", b"x")
        session = storage.sessions.cached_account_session
        storage.sessions.cached_account_session = replace(
            session, authorized_at=datetime.now(UTC) - timedelta(hours=24)
        )

        assert await storage.exists("a.txt") is True
        assert await storage.exists("a.txt") is True

        assert fake.auth_count == 2

    async def test_fresh_session_reused(self, storage: B2StorageService, fake: FakeB2) -> None:
        await storage.upload("a.txt", b"x")
        await storage.upload("b.txt", b"y")

        assert fake.auth_count == 1
        assert fake.upload_url_count == 1

    async def test_concurrent_callers_share_one_authorization(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        await asyncio.gather(*(storage.exists(f"k{i}") for i in range(5)))

        assert fake.auth_count == 1


class TestB2Operations:
    """download, delete, exists, get_metadata, copy, URLs."""

    async def test_download_missing(self, storage: B2StorageService) -> None:
        with pytest.raises(StorageNotFoundError):
            await storage.download("missing.txt")

    async def test_exists_lifecycle(self, storage: B2StorageService) -> None:
        assert await storage.exists("a.txt") is False
        await storage.upload("a.txt", b"x")
        assert await storage.exists("a.txt") is True
        await storage.delete("a.txt")
        assert await storage.exists("a.txt") is False

    async def test_exists_matches_exact_name_only(self, storage: B2StorageService) -> None:
        await storage.upload("a.txt.bak", b"x")
        assert await storage.exists("a.txt") is False

    async def test_exists_swallows_lookup_errors(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        fake.fail_list = True
        assert await storage.exists("a.txt") is False

    async def test_delete_missing_is_noop(self, storage: B2StorageService, fake: FakeB2) -> None:
        await storage.delete("missing.txt")
        assert "b2_delete_file_version" not in fake.calls

    async def test_delete_sends_file_id(self, storage: B2StorageService, fake: FakeB2) -> None:
        await storage.upload("a.txt", b"x")
        await storage.delete("a.txt")
        assert fake.api_payloads["b2_delete_file_version"] == [
            {"fileName": "a.txt", "fileId": "id-a.txt"}
        ]

    async def test_get_metadata(self, storage: B2StorageService) -> None:
        await storage.upload("a.txt", b"hello", "text/plain", {"owner": "u1"})

        metadata = await storage.get_metadata("a.txt")

        assert metadata.size == 5
        assert metadata.content_type == "text/plain"
        assert metadata.etag == hashlib.sha1(b"hello").hexdigest()
        assert metadata.metadata == {"owner": "u1"}
        assert metadata.last_modified == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    async def test_get_metadata_missing(self, storage: B2StorageService) -> None:
        with pytest.raises(StorageNotFoundError):
            await storage.get_metadata("missing.txt")

    async def test_copy(self, make_storage, fake: FakeB2) -> None:
        storage = make_storage(tenant_prefix="acme")
        await storage.upload("src.txt", b"data")

        await storage.copy("src.txt", "dst.txt")

        assert fake.api_payloads["b2_copy_file"] == [
            {
                "sourceFileId": "id-acme/src.txt",
                "destinationBucketId": "bucket-id",
                "destinationFileName": "acme/dst.txt",
            }
        ]
        assert (await storage.download("dst.txt")).data == b"data"

    async def test_copy_missing_source(self, storage: B2StorageService, fake: FakeB2) -> None:
        with pytest.raises(StorageNotFoundError):
            await storage.copy("missing-key", "dest")
        assert "dest" not in fake.files
        assert "b2_copy_file" not in fake.calls

    async def test_get_url_public(self, storage: B2StorageService) -> None:
        assert await storage.get_url("docs/a.txt") == f"{DOWNLOAD}/file/bucket/docs/a.txt"

    async def test_presigned_get(self, storage: B2StorageService, fake: FakeB2) -> None:
        await storage.upload("docs/a.txt", b"x")

        url = await storage.generate_presigned_url("docs/a.txt", "get")

        assert url == f"{DOWNLOAD}/file/bucket/docs/a.txt?Authorization=dl-token"
        assert fake.api_payloads["b2_get_download_authorization"] == [
            {
                "bucketId": "bucket-id",
                "fileNamePrefix": "docs/a.txt",
                "validDurationInSeconds": 900,
            }
        ]

    async def test_get_url_with_expiry_is_presigned(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        await storage.upload("a.txt", b"x")

        url = await storage.get_url("a.txt", expires_in=60)

        assert url.endswith("?Authorization=dl-token")
        assert fake.api_payloads["b2_get_download_authorization"][0]["validDurationInSeconds"] == 60

    async def test_presigned_get_missing(self, storage: B2StorageService) -> None:
        with pytest.raises(StorageNotFoundError):
            await storage.generate_presigned_url("missing.txt", "get")

    async def test_presigned_put_returns_upload_url(self, storage: B2StorageService) -> None:
        assert (
            await storage.generate_presigned_url("anything.txt", "put")
            == "https://pod.b2.test/upload/1"
        )

    async def test_aclose_leaves_injected_client_open(self, storage: B2StorageService) -> None:
        async with storage:
            pass
        assert await storage.get_url("a.txt") == f"{DOWNLOAD}/file/bucket/a.txt"


class TestB2RetryPolicy:
    """Each network call gets max_retries attempts with linear backoff, no more."""

    @pytest.fixture
    def sleeps(self) -> list[float]:
        return []

    @pytest.fixture
    def retrying_storage(self, make_storage, sleeps: list[float]) -> B2StorageService:
        async def _record(delay: float) -> None:
            sleeps.append(delay)

        return make_storage(retry_delay=1.0, sleep=_record)

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.download("a.txt"),
            lambda s: s.delete("a.txt"),
            lambda s: s.get_metadata("a.txt"),
            lambda s: s.copy("a.txt", "b.txt"),
            lambda s: s.generate_presigned_url("a.txt", "get"),
        ],
        ids=["download", "delete", "get_metadata", "copy", "presigned_get"],
    )
    async def test_rejected_authorization_attempted_max_retries_times(
        self, retrying_storage: B2StorageService, fake: FakeB2, sleeps: list[float], call
    ) -> None:
        fake.reject_auth = True

        with pytest.raises(StorageAuthenticationError):
            await call(retrying_storage)

        assert fake.auth_count == 3
        assert sleeps == [1.0, 2.0]

    async def test_exists_with_rejected_authorization(
        self, retrying_storage: B2StorageService, fake: FakeB2, sleeps: list[float]
    ) -> None:
        fake.reject_auth = True

        assert await retrying_storage.exists("a.txt") is False
        assert fake.auth_count == 3
        assert sleeps == [1.0, 2.0]

    async def test_failing_upload_url_requested_max_retries_times(
        self, retrying_storage: B2StorageService, fake: FakeB2, sleeps: list[float]
    ) -> None:
        fake.upload_url_status = 500

        with pytest.raises(StorageUploadError):
            await retrying_storage.upload("a.txt", b"x")

        assert fake.auth_count == 1
        assert fake.upload_url_count == 3
        assert sleeps == [1.0, 2.0]

    async def test_presigned_put_server_error_is_url_error(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        fake.upload_url_status = 503

        with pytest.raises(StorageUrlError):
            await storage.generate_presigned_url("a.txt", "put")

    async def test_get_url_zero_expiry_is_presigned(
        self, storage: B2StorageService, fake: FakeB2
    ) -> None:
        await storage.upload("a.txt", b"x")

        url = await storage.get_url("a.txt", expires_in=0)

        assert url.endswith("?Authorization=dl-token")
        assert fake.api_payloads["b2_get_download_authorization"][0]["validDurationInSeconds"] == 0
