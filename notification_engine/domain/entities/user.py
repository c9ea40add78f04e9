"""Domain entity representing a user."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_ADMIN = "admin"
ROLE_USER = "user"


@dataclass
class User:
    """Core attributes describing a notification recipient."""

    id: str | None
    email: str | None
    name: str
    role: str = ROLE_USER
    is_active: bool = True
    last_login_at: datetime | None = None
    created_at: datetime | None = None

    def is_admin(self) -> bool:
        """Return ``True`` when the user is an administrator."""

        return self.role.lower() == ROLE_ADMIN


__all__ = ["ROLE_ADMIN", "ROLE_USER", "User"]
