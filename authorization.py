# authorization.py
"""
Per-request caller resolution.

A request is either unauthenticated (401), a regular user whose queries are
restricted to their own rows, or an admin who sees every row. Nothing is
remembered between requests; the bearer token is decoded every time.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from errors import AuthError, ForbiddenError
from models import Role


@dataclass(frozen=True)
class Scope:
    """Which expense rows a query may touch: all of them, or one owner's."""

    user_id: Optional[int] = None

    @classmethod
    def unrestricted(cls) -> "Scope":
        return cls()

    @classmethod
    def owned_by(cls, user_id: int) -> "Scope":
        return cls(user_id=user_id)

    @property
    def is_unrestricted(self) -> bool:
        return self.user_id is None

    def predicate(self, column: str = "e.user_id") -> tuple[str, tuple]:
        """SQL fragment to append after an existing WHERE clause, plus its params."""
        if self.user_id is None:
            return "", ()
        return f" AND {column} = ?", (self.user_id,)


@dataclass(frozen=True)
class Caller:
    user_id: int
    username: str
    email: str
    role: Role

    @classmethod
    def from_claims(cls, claims: dict) -> "Caller":
        return cls(
            user_id=claims["userId"],
            username=claims["username"],
            email=claims["email"],
            role=Role(claims["role"]),
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    @property
    def scope(self) -> Scope:
        if self.is_admin:
            return Scope.unrestricted()
        return Scope.owned_by(self.user_id)


# Security scheme for bearer token; missing headers are reported as 401 below
security = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Caller:
    """
    Dependency resolving the authenticated caller from the JWT.

    Usage:
        @app.get("/protected")
        async def protected_route(caller: Caller = Depends(get_current_user)):
            rows = await service.list(caller.scope)
    """
    if credentials is None:
        raise AuthError("Unauthorized: bearer token required")
    claims = request.app.state.auth_service.validate_token(credentials.credentials)
    return Caller.from_claims(claims)


def require_admin(caller: Caller = Depends(get_current_user)) -> Caller:
    if not caller.is_admin:
        raise ForbiddenError("Access denied: admin role required")
    return caller
