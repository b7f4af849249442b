"""Domain exceptions for the contentstore package.

Defines the base exception shared by every layer plus the caller-facing
policy violations. Infrastructure (storage) errors extend the same base in
contentstore.infrastructure.exceptions so callers can map them consistently.
"""

from typing import Any


class ContentStoreException(Exception):
    """Base exception for all contentstore errors.

    Callers map these to responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. file_path, reason).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for logs and API error bodies."""
        return {"error": self.error_code, "message": self.message, "details": self.details}


class ValidationException(ContentStoreException):
    """Raised when caller-supplied input is outside policy (file type, size, key)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)
