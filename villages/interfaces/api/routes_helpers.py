"""Helper utilities shared across API route handlers."""

from fastapi import HTTPException, status

from villages.domain.errors import (
    AuthorizationError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from villages.infrastructure.store_health import classify_store_error, describe_store_error


def to_http_exception(exc: Exception) -> HTTPException:
    """Translate a domain error into the HTTP error returned to the client."""

    if isinstance(exc, StoreUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=describe_store_error(classify_store_error(exc)),
        )
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    raise exc
