"""
Authentication dependencies for FastAPI.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel

from database.models import UserRole
from auth.security import security, decode_access_token
from core.exceptions import Unauthorized, InvalidToken, Forbidden
import config


class TokenUser(BaseModel):
    """Identity carried by a validated access token."""
    id: int
    role: UserRole
    roll_number: Optional[str] = None


def get_db_session():
    """Get database session."""
    if not config.db:
        raise HTTPException(status_code=503, detail="Database not initialized")
    with config.db.get_session() as session:
        yield session


def authenticate_token(token: Optional[str]) -> TokenUser:
    """
    Validate a bearer token without touching the database.

    Raises:
        Unauthorized: token missing
        InvalidToken: bad signature, expired, or malformed claims
    """
    if not token:
        raise Unauthorized()

    payload = decode_access_token(token, config.SECRET_KEY)
    if payload is None:
        raise InvalidToken()

    try:
        return TokenUser(
            id=int(payload.get("sub")),
            role=UserRole(payload.get("role")),
            roll_number=payload.get("roll"),
        )
    except (TypeError, ValueError):
        raise InvalidToken()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> TokenUser:
    """
    Get current authenticated user from the Authorization: Bearer header.

    Raises:
        Unauthorized / InvalidToken: If authentication fails
    """
    return authenticate_token(credentials.credentials if credentials else None)


def authorize(user: TokenUser, required_role: UserRole) -> None:
    """Raise Forbidden unless the caller holds the required role."""
    if user.role != required_role:
        if required_role == UserRole.ADMIN:
            raise Forbidden("Admin only")
        raise Forbidden(f"Only {required_role.value}s can perform this action")


def require_role(required_role: UserRole):
    """
    Dependency factory for role-based access control.

    Args:
        required_role: Role the caller must hold

    Returns:
        Dependency function
    """
    async def role_checker(
        current_user: TokenUser = Depends(get_current_user)
    ) -> TokenUser:
        authorize(current_user, required_role)
        return current_user

    return role_checker


require_admin = require_role(UserRole.ADMIN)
require_student = require_role(UserRole.STUDENT)
