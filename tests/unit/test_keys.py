"""Unit tests for key generation and upload-policy helpers."""

import re

import pytest

from contentstore.domain.exceptions import ValidationException
from contentstore.infrastructure.external.storage.keys import (
    ensure_upload_allowed,
    generate_key,
    get_file_extension,
    sanitize_file_name,
    validate_file_size,
    validate_file_type,
)

_KEY_PATTERN = re.compile(r"^documents(/[^/]+)?/\d+-[a-z0-9]+-[A-Za-z0-9._-]+$")


class TestGenerateKey:
    """Tests for generate_key."""

    def test_format_without_prefix(self) -> None:
        key = generate_key("documents", "report.pdf")
        assert _KEY_PATTERN.match(key)
        assert key.startswith("documents/")
        assert key.endswith("-report.pdf")
        assert key.count("/") == 1

    def test_format_with_prefix(self) -> None:
        key = generate_key("documents", "report.pdf", prefix="user-42")
        assert key.startswith("documents/user-42/")
        assert _KEY_PATTERN.match(key)

    def test_unsafe_characters_replaced(self) -> None:
        key = generate_key("documents", "my report (final).pdf")
        assert key.endswith("-my_report__final_.pdf")

    def test_token_is_eleven_lowercase_alphanumerics(self) -> None:
        token = generate_key("documents", "a.txt").split("/")[-1].split("-")[1]
        assert re.fullmatch(r"[a-z0-9]{11}", token)

    def test_keys_are_unique(self) -> None:
        keys = {generate_key("documents", "a.txt") for _ in range(50)}
        assert len(keys) == 50


class TestSanitizeFileName:
    """Tests for sanitize_file_name."""

    def test_keeps_dots_and_dashes(self) -> None:
        assert sanitize_file_name("archive-2024.tar.gz") == "archive-2024.tar.gz"

    def test_replaces_slashes_and_unicode(self) -> None:
        assert sanitize_file_name("../é x") == "..___x"


class TestGetFileExtension:
    """Tests for get_file_extension."""

    @pytest.mark.parametrize(
        ("file_name", "expected"),
        [
            ("report.PDF", "pdf"),
            ("archive.tar.gz", "gz"),
            ("README", ""),
            ("trailing.", ""),
        ],
    )
    def test_extension(self, file_name: str, expected: str) -> None:
        assert get_file_extension(file_name) == expected


class TestUploadPolicy:
    """Tests for validate_file_type, validate_file_size, ensure_upload_allowed."""

    def test_wildcard_allows_everything(self) -> None:
        assert validate_file_type("application/zip", ["*/*"])

    def test_major_type_wildcard(self) -> None:
        assert validate_file_type("image/png", ["image/*"])
        assert not validate_file_type("video/mp4", ["image/*"])

    def test_parameters_ignored(self) -> None:
        assert validate_file_type("text/plain; charset=utf-8", ["text/plain"])

    def test_size_limit_inclusive(self) -> None:
        assert validate_file_size(10, 10)
        assert not validate_file_size(11, 10)

    def test_ensure_upload_allowed_rejects_type(self, make_settings) -> None:
        settings = make_settings(allowed_mime_types="image/png, application/pdf")
        with pytest.raises(ValidationException) as exc_info:
            ensure_upload_allowed("text/html", 10, settings)
        assert exc_info.value.details == {"field": "content_type"}

    def test_ensure_upload_allowed_rejects_size(self, make_settings) -> None:
        settings = make_settings(max_upload_size=5)
        with pytest.raises(ValidationException, match="too large"):
            ensure_upload_allowed("text/plain", 6, settings)

    def test_ensure_upload_allowed_passes(self, make_settings) -> None:
        ensure_upload_allowed("application/pdf", 5, make_settings())
