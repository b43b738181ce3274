"""Exceptions raised by the access-control core.

Input and state errors also derive from ``ValueError`` so callers that only
know about "bad input" keep catching them. A denied check-in is not an
exception: it is returned as a ``ValidationResult`` / ``CheckInOutcome``.
"""


class AccessControlError(Exception):
    """Base exception for visit-control errors."""
    pass


class InvalidArgumentError(AccessControlError, ValueError):
    """Malformed or missing input (blank motive, unknown id, short text)."""
    pass


class NotFoundError(InvalidArgumentError):
    """A referenced record does not exist."""
    pass


class InvalidStateError(AccessControlError, ValueError):
    """The entity's current status forbids the requested transition."""
    pass


class PermissionDeniedError(AccessControlError, ValueError):
    """The acting user's role does not allow the operation."""
    pass


class DuplicateError(AccessControlError, ValueError):
    """A record with the same unique key already exists."""

    def __init__(self, message: str, existing=None) -> None:
        super().__init__(message)
        self.existing = existing


class StorageError(AccessControlError):
    """Wraps a persistence failure. Nothing was committed."""
    pass
