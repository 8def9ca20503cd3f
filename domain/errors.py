"""Domain error kinds shared by the order and auth use cases."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Closed set of domain error kinds; values are the stable wire codes."""

    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_ENTITY = "DUPLICATE_ORDER"
    INVALID_INPUT = "VALIDATION_ERROR"
    INVALID_ITEM_ID = "INVALID_ITEM_ID"
    UNAUTHORIZED = "AUTH_ERROR"
    FORBIDDEN = "FORBIDDEN"


class DomainError(Exception):
    """Base class for business-level failures.

    Subclasses pin ``kind`` and a default message; ``details`` is optional
    structured context for API consumers.
    """

    kind: ErrorKind
    default_message = "Domain error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class DuplicateEntityError(DomainError):
    kind = ErrorKind.DUPLICATE_ENTITY
    default_message = "Order already exists"


class InvalidInputError(DomainError):
    kind = ErrorKind.INVALID_INPUT
    default_message = "Invalid input provided"


class InvalidItemIdError(DomainError):
    kind = ErrorKind.INVALID_ITEM_ID
    default_message = "Item ID must be numeric"


class UnauthorizedError(DomainError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Unauthorized"


class InvalidTokenError(UnauthorizedError):
    """Token is malformed, badly signed or expired; the cause is not exposed."""

    default_message = "Invalid token"


class ForbiddenError(DomainError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Access denied"
