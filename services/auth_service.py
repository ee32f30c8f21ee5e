"""
Authentication service: login, first-time activation and admin provisioning.
"""
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from database.models import User, UserRole
from auth.security import (
    verify_password, get_password_hash, validate_password, create_access_token
)
from core.exceptions import (
    UserNotFound, NotActivated, InvalidCredentials, InvalidOrAlreadyActivated, ValidationError
)
from core.validators import normalize_roll_number
from core.logger import logger
import config


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def get_by_roll_number(db: Session, roll_number: Optional[str]) -> Optional[User]:
        """Look a user up by identifier (case-insensitive)."""
        roll_number = normalize_roll_number(roll_number)
        if not roll_number:
            return None
        return db.query(User).filter(User.roll_number == roll_number).first()

    @staticmethod
    def create_token(user: User) -> str:
        """Signed, time-limited access token carrying the user id and role."""
        data = {
            "sub": str(user.id),
            "role": user.role.value,
            "roll": user.roll_number,
        }
        return create_access_token(data, config.SECRET_KEY)

    @staticmethod
    def login(db: Session, roll_number: str, password: str) -> Tuple[str, UserRole]:
        """
        Authenticate a user.

        Args:
            db: Database session
            roll_number: Identifier entered on the login form
            password: Plain text password

        Returns:
            Tuple of (access_token, role)

        Raises:
            UserNotFound: no such identifier
            NotActivated: the student has not set a password yet
            InvalidCredentials: password does not match
        """
        user = AuthService.get_by_roll_number(db, roll_number)
        if not user:
            logger.info(f"Login attempt for unknown user: {roll_number!r}")
            raise UserNotFound()

        if not user.is_active:
            raise NotActivated()

        if not verify_password(password or "", user.hashed_password):
            logger.warning(f"Failed login for {user.roll_number}")
            raise InvalidCredentials()

        logger.info(f"User logged in: {user.roll_number} (role: {user.role.value})")
        return AuthService.create_token(user), user.role

    @staticmethod
    def activate(db: Session, roll_number: str, password: str) -> User:
        """
        First-time password set for an imported student.

        Raises:
            InvalidOrAlreadyActivated: no inactive user with this identifier
            ValidationError: password rejected by the password policy
        """
        user = AuthService.get_by_roll_number(db, roll_number)
        if not user or user.is_active:
            raise InvalidOrAlreadyActivated()

        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValidationError(error_message)

        user.hashed_password = get_password_hash(password)
        user.is_active = True
        db.commit()
        logger.info(f"Account activated: {user.roll_number}")
        return user

    @staticmethod
    def ensure_admin(
        db: Session,
        roll_number: str,
        password: str,
        name: Optional[str] = None,
        reset_password: bool = False,
    ) -> Tuple[User, bool]:
        """
        Idempotently provision an admin account.

        An existing account keeps its password unless reset_password is set;
        it is always left active with the admin role.

        Returns:
            Tuple of (user, created)
        """
        roll_number = normalize_roll_number(roll_number)
        if not roll_number:
            raise ValidationError("Admin identifier is required")

        user = db.query(User).filter(User.roll_number == roll_number).first()
        needs_password = user is None or reset_password or not user.has_password
        if needs_password:
            is_valid, error_message = validate_password(password)
            if not is_valid:
                raise ValidationError(error_message)

        if user is None:
            user = User(
                roll_number=roll_number,
                name=name,
                role=UserRole.ADMIN,
                hashed_password=get_password_hash(password),
                is_active=True,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info(f"Admin user created: {roll_number}")
            return user, True

        if user.role != UserRole.ADMIN:
            logger.warning(f"Promoting {roll_number} from {user.role.value} to admin")
            user.role = UserRole.ADMIN
        if needs_password:
            user.hashed_password = get_password_hash(password)
            logger.info(f"Admin password set: {roll_number}")
        if name:
            user.name = name
        user.is_active = True
        db.commit()
        db.refresh(user)
        return user, False
