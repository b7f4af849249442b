"""Domain layer: object key value objects and exceptions.

No dependencies on infrastructure. Used by the storage providers and by
calling layers.
"""

from contentstore.domain.exceptions import (
    ContentStoreException,
    ValidationException,
)
from contentstore.domain.value_objects import (
    LogicalKey,
    PhysicalKey,
    to_logical,
    to_physical,
)

__all__ = [
    # Exceptions
    "ContentStoreException",
    "ValidationException",
    # Value objects
    "LogicalKey",
    "PhysicalKey",
    "to_logical",
    "to_physical",
]
