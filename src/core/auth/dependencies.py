from typing import Annotated

from fastapi import Depends, Header

from src.core.auth.jwt import decode_token
from src.core.auth.models import Principal, UserRole
from src.core.exceptions import AuthenticationError, AuthorizationError


async def get_current_principal(
    authorization: Annotated[str | None, Header()] = None,
) -> Principal:
    """
    Dependency to get the authenticated caller from the bearer token.

    Usage:
        @router.get("/transactions")
        async def list_transactions(principal: Principal = Depends(get_current_principal)):
            ...
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    payload = decode_token(authorization.removeprefix("Bearer "), token_type="access")
    try:
        return Principal(
            user_id=int(payload["sub"]),
            tenant_id=int(payload["tenant"]),
            role=str(payload["role"]),
        )
    except ValueError as exc:
        raise AuthenticationError("Invalid token claims") from exc


def require_roles(*roles: UserRole):
    """
    Dependency factory to require specific roles.

    Usage:
        @router.post("/import")
        async def import_statement(
            principal: Principal = Depends(require_roles(UserRole.ADMIN))
        ):
            ...
    """

    async def role_checker(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not principal.has_role(*roles):
            allowed = ", ".join(r.value for r in roles)
            raise AuthorizationError(f"Required role: {allowed}")
        return principal

    return role_checker


# Convenience dependencies
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
ReconciliationWriter = Annotated[
    Principal,
    Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.ACCOUNTANT)),
]
