"""
Acting identity handed to every core operation.

The auth layer resolves it from the bearer token; services trust it and
check only ownership and role.
"""
from dataclasses import dataclass
from typing import Optional

from ..errors import ForbiddenError
from .db_models import UserRole


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def require_role(self, *roles: UserRole) -> None:
        if self.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise ForbiddenError(
                f"Role '{self.role.value}' may not perform this action (requires {allowed})",
                {"role": self.role.value},
            )
