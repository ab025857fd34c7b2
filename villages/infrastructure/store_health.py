"""Classification of backing-store outages.

Typed errors are checked first. The message signatures below only catch
errors that reach us untyped (for instance relayed through an HTTP body), and
they will miss outages whose wording changes.
"""

from __future__ import annotations

from enum import Enum

import httpx
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from villages.domain.errors import (
    ApiError,
    AuthorizationError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

UNAVAILABLE_SIGNATURES: tuple[str, ...] = (
    "Server selection timeout",
    "No available servers",
    "Connection refused",
    "ENOTFOUND",
    "ECONNREFUSED",
    "MongoServerSelectionError",
    "MongoNetworkError",
    "MongoTimeoutError",
    "InternalError",
    "Can't reach database server",
    "Connection timeout",
    "Database connection error",
    "PrismaClientKnownRequestError",
)

_UNAVAILABLE_TYPES = (
    StoreUnavailableError,
    OperationalError,
    DisconnectionError,
    PoolTimeoutError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)
_NEVER_UNAVAILABLE_TYPES = (ValidationError, AuthorizationError, NotFoundError)


class StoreErrorKind(str, Enum):
    CONNECTION = "CONNECTION"
    TIMEOUT = "TIMEOUT"
    AUTH = "AUTH"
    UNKNOWN = "UNKNOWN"


def is_store_unavailable(error: BaseException | str | None) -> bool:
    """Return ``True`` when ``error`` means the backing store is unreachable."""

    if error is None:
        return False
    if isinstance(error, _NEVER_UNAVAILABLE_TYPES):
        return False
    if isinstance(error, _UNAVAILABLE_TYPES):
        return True
    if isinstance(error, ApiError) and error.status_code in (502, 503, 504):
        return True
    text = str(error)
    return any(signature in text for signature in UNAVAILABLE_SIGNATURES)


def classify_store_error(error: BaseException | str | None) -> StoreErrorKind:
    if error is None:
        return StoreErrorKind.UNKNOWN
    if isinstance(error, AuthorizationError):
        return StoreErrorKind.AUTH
    if isinstance(error, (httpx.TimeoutException, PoolTimeoutError, TimeoutError)):
        return StoreErrorKind.TIMEOUT

    text = str(error)
    if "authentication failed" in text.lower() or "unauthorized" in text.lower():
        return StoreErrorKind.AUTH
    if "timeout" in text.lower() or "TimeoutError" in text:
        return StoreErrorKind.TIMEOUT
    if isinstance(error, (httpx.ConnectError, ConnectionError, DisconnectionError)):
        return StoreErrorKind.CONNECTION
    if any(
        token in text
        for token in ("Connection", "No available servers", "ECONNREFUSED", "ENOTFOUND")
    ):
        return StoreErrorKind.CONNECTION
    return StoreErrorKind.UNKNOWN


def describe_store_error(kind: StoreErrorKind) -> str:
    """Return a user-facing explanation for a degraded-mode banner."""

    if kind is StoreErrorKind.CONNECTION:
        return (
            "Unable to connect to the database. Please check your internet "
            "connection and try again."
        )
    if kind is StoreErrorKind.TIMEOUT:
        return "Database is responding slowly. Please wait a moment and try again."
    if kind is StoreErrorKind.AUTH:
        return "Database authentication issue. Please contact system administrator."
    return "Database is temporarily unavailable. Please try again in a few moments."


__all__ = [
    "StoreErrorKind",
    "UNAVAILABLE_SIGNATURES",
    "classify_store_error",
    "describe_store_error",
    "is_store_unavailable",
]
