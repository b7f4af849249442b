"""Tests for object key value objects and tenant-prefix mapping."""

import pytest

from contentstore.domain.value_objects import (
    LogicalKey,
    PhysicalKey,
    to_logical,
    to_physical,
)


class TestLogicalKey:
    """LogicalKey: non-empty caller-visible name."""

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            LogicalKey("")

    def test_str(self) -> None:
        assert str(LogicalKey("docs/a.txt")) == "docs/a.txt"


class TestKeyMapping:
    """to_physical / to_logical."""

    def test_no_prefix_is_identity(self) -> None:
        assert to_physical("docs/a.txt") == PhysicalKey("docs/a.txt")
        assert to_physical("docs/a.txt", "") == PhysicalKey("docs/a.txt")

    def test_prefix_applied(self) -> None:
        assert to_physical("docs/a.txt", "acme").value == "acme/docs/a.txt"

    def test_prefix_slashes_and_spaces_normalized(self) -> None:
        assert to_physical("docs/a.txt", " /acme/ ").value == "acme/docs/a.txt"

    def test_round_trip(self) -> None:
        physical = to_physical(LogicalKey("docs/a.txt"), "acme")
        assert to_logical(physical, "acme") == LogicalKey("docs/a.txt")

    def test_to_logical_rejects_foreign_prefix(self) -> None:
        with pytest.raises(ValueError, match="outside tenant prefix"):
            to_logical("other/docs/a.txt", "acme")

    def test_to_logical_without_prefix(self) -> None:
        assert to_logical("acme/docs/a.txt").value == "acme/docs/a.txt"
