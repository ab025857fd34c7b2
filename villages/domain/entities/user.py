"""Authenticated caller as resolved by the identity provider."""

from dataclasses import dataclass

ROLE_ADMIN = "ADMIN"
ROLE_VOLUNTEER = "VOLUNTEER"
ROLE_MEMBER = "MEMBER"


@dataclass
class CurrentUser:
    """Identity and role of the user making a request."""

    id: str
    role: str = ROLE_MEMBER
    name: str | None = None

    def has_role(self, role: str) -> bool:
        """Return ``True`` when the user's role matches ``role``."""

        return self.role.upper() == role.upper()

    def is_admin(self) -> bool:
        """Return ``True`` when the user is an administrator."""

        return self.has_role(ROLE_ADMIN)


__all__ = ["CurrentUser", "ROLE_ADMIN", "ROLE_MEMBER", "ROLE_VOLUNTEER"]
