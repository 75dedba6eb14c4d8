from dataclasses import dataclass
from enum import StrEnum


class UserRole(StrEnum):
    """Roles recognised by the reconciliation API."""

    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    ACCOUNTANT = "Accountant"
    USER = "User"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, resolved from the access token claims."""

    user_id: int
    tenant_id: int
    role: str

    def has_role(self, *roles: UserRole) -> bool:
        """Check if principal has any of the specified roles."""
        return self.role in [r.value for r in roles]
