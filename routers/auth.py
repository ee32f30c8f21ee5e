"""
Authentication endpoints: login and first-time account activation.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_db_session
from services.auth_service import AuthService
from core.exceptions import ValidationError


router = APIRouter(prefix="/api", tags=["authentication"])


# Request Models
class CredentialsRequest(BaseModel):
    """
    Login / activation request.
    The login page sends rollNumber + password; identifier + secret are accepted too.
    """
    rollNumber: Optional[str] = None
    identifier: Optional[str] = None
    password: Optional[str] = None
    secret: Optional[str] = None

    def get_identifier(self) -> str:
        """Return the identifier (roll number)."""
        return (self.rollNumber or self.identifier or "").strip()

    def get_secret(self) -> str:
        """Return the password."""
        return self.password if self.password is not None else (self.secret or "")


class LoginResponse(BaseModel):
    """Login response."""
    token: str
    role: str


class MessageResponse(BaseModel):
    message: str


def _require_identifier(payload: CredentialsRequest) -> str:
    identifier = payload.get_identifier()
    if not identifier:
        raise ValidationError("Roll number is required")
    return identifier


@router.post("/login", response_model=LoginResponse)
def login(
    payload: CredentialsRequest,
    db: Session = Depends(get_db_session)
):
    """
    Log in with roll number and password.

    Returns 403 with needsActivation=true when the account still has to be activated.
    """
    token, role = AuthService.login(db, _require_identifier(payload), payload.get_secret())
    return LoginResponse(token=token, role=role.value)


@router.post("/activate", response_model=MessageResponse)
def activate(
    payload: CredentialsRequest,
    db: Session = Depends(get_db_session)
):
    """First-time password set for an imported student."""
    AuthService.activate(db, _require_identifier(payload), payload.get_secret())
    return MessageResponse(message="Account activated successfully. Now login.")
