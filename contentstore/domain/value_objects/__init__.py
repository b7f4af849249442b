"""Domain value objects and shared value types."""

from contentstore.domain.value_objects.core import (
    LogicalKey,
    PhysicalKey,
    to_logical,
    to_physical,
)

__all__ = [
    "LogicalKey",
    "PhysicalKey",
    "to_logical",
    "to_physical",
]
