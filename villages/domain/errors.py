"""Error hierarchy shared by the storage, realtime and fetch layers."""

from __future__ import annotations


class VillagesError(Exception):
    """Base class for application errors."""


class StoreUnavailableError(VillagesError):
    """The backing store could not be reached or timed out.

    Transient: callers recover through cached data and bounded retries.
    """


class ValidationError(VillagesError, ValueError):
    """Input rejected at the boundary. Never retried."""


class AuthorizationError(VillagesError):
    """The caller may not perform the operation. Never retried."""


class NotFoundError(VillagesError, LookupError):
    """The requested record does not exist."""


class ApiError(VillagesError):
    """Unclassified failure returned by a remote API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "ApiError",
    "AuthorizationError",
    "NotFoundError",
    "StoreUnavailableError",
    "ValidationError",
    "VillagesError",
]
