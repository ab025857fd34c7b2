"""Bearer token verification for identities issued by the auth service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from villages.config import Settings, get_settings
from villages.domain.entities import ROLE_MEMBER, CurrentUser


def create_access_token(
    data: dict, expires_delta: timedelta | None = None, settings: Settings | None = None
) -> str:
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    return jwt.encode(
        {**data, "exp": expire}, settings.secret_key, algorithm=settings.jwt_algorithm
    )


def decode_access_token(token: str, settings: Settings | None = None) -> dict:
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Could not validate credentials") from exc


class JWTIdentityProvider:
    """Resolve callers from signed tokens carrying ``sub`` and ``role`` claims."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def resolve(self, token: str) -> CurrentUser:
        payload = decode_access_token(token, self._settings)
        subject = payload.get("sub")
        if not subject:
            raise ValueError("Could not validate credentials")
        return CurrentUser(
            id=str(subject),
            role=str(payload.get("role") or ROLE_MEMBER),
            name=payload.get("name"),
        )


__all__ = ["JWTIdentityProvider", "create_access_token", "decode_access_token"]
