"""FastAPI dependency utilities."""

from __future__ import annotations

from typing import Protocol

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from villages.application.use_cases.notifications import NotificationDispatcher
from villages.domain.entities import CurrentUser
from villages.infrastructure.database import get_db
from villages.infrastructure.realtime import RealtimeServices
from villages.infrastructure.repositories import NotificationRepository

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


class IdentityProvider(Protocol):
    """Turns a bearer token into the calling user; raises ``ValueError`` if invalid."""

    def resolve(self, token: str) -> CurrentUser: ...


def resolve_current_user(token: str, provider: IdentityProvider) -> CurrentUser:
    """Resolve the authenticated user for the provided token."""

    try:
        user = provider.resolve(token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    if user is None or not user.id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_current_user(
    token: str = Depends(oauth2_scheme),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> CurrentUser:
    """Return the authenticated user from the provided token."""

    return resolve_current_user(token, provider)


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Ensure the authenticated user has administrator privileges."""

    if not current_user.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized",
        )
    return current_user


def get_realtime_services(request: Request) -> RealtimeServices:
    return request.app.state.realtime


def get_notification_repository(db: Session = Depends(get_db)) -> NotificationRepository:
    return NotificationRepository(db)


def get_dispatcher(
    repository: NotificationRepository = Depends(get_notification_repository),
    realtime: RealtimeServices = Depends(get_realtime_services),
) -> NotificationDispatcher:
    """Build a dispatcher bound to the request's database session."""

    return NotificationDispatcher(repository, realtime.registry, realtime.publisher)


__all__ = [
    "IdentityProvider",
    "get_current_user",
    "get_dispatcher",
    "get_identity_provider",
    "get_notification_repository",
    "get_realtime_services",
    "oauth2_scheme",
    "require_admin",
    "resolve_current_user",
]
