"""User service - handles registration and authentication"""

from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime, timezone
from functools import lru_cache
from photoshare.models.user import User
from photoshare.schemas.user import UserRegister
from photoshare.core.security import get_password_hash, verify_password
from photoshare.core.exceptions import (
    InvalidCredentialsError,
    ResourceAlreadyExistsError,
    ValidationError,
)
from photoshare.services.google_identity import ExternalIdentity
import logging

logger = logging.getLogger(__name__)


@lru_cache()
def _placeholder_hash() -> str:
    return get_password_hash("photoshare-unknown-account")


class UserService:
    """Service for user management"""

    @staticmethod
    def register_user(db: Session, data: UserRegister) -> User:
        """
        Create a new password account

        Args:
            db: Database session
            data: Registration data

        Returns:
            Created user
        """
        email = data.email.strip().lower()
        if UserService.get_user_by_email(db, email):
            raise ResourceAlreadyExistsError("User")

        user = User(
            email=email,
            name=data.name.strip(),
            password_hash=get_password_hash(data.password),
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Registered user: {user.id}")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> User:
        """
        Authenticate user by email and password

        Unknown email, missing password and wrong password all raise the
        same InvalidCredentialsError.

        Args:
            db: Database session
            email: Email address
            password: Password

        Returns:
            Authenticated user
        """
        user = UserService.get_user_by_email(db, email.strip().lower())
        if not user or not user.password_hash:
            # Same bcrypt cost whether or not the account exists.
            verify_password(password, _placeholder_hash())
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        user.last_login = datetime.now(timezone.utc)
        db.commit()

        logger.info(f"User authenticated: {user.id}")
        return user

    @staticmethod
    def get_or_create_external_user(db: Session, identity: ExternalIdentity) -> User:
        """
        Find or create the user behind a verified Google identity

        A user is matched by Google subject first, then by email; an
        existing password account found by email is linked to the subject.

        Args:
            db: Database session
            identity: Verified external identity

        Returns:
            Signed-in user

        Raises:
            InvalidCredentialsError: The email belongs to an account linked
                to a different Google subject
        """
        user = db.query(User).filter(User.google_id == identity.subject).first()
        if not user:
            user = UserService.get_user_by_email(db, identity.email)
            if user:
                if user.google_id and user.google_id != identity.subject:
                    raise InvalidCredentialsError()
                user.google_id = identity.subject
                logger.info(f"Linked Google identity to user: {user.id}")
            else:
                user = User(
                    email=identity.email,
                    name=(identity.name or identity.email.split("@")[0])[:100],
                    google_id=identity.subject,
                )
                db.add(user)

        user.last_login = datetime.now(timezone.utc)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def change_password(db: Session, user: User, current_password: Optional[str], new_password: str) -> User:
        """
        Change a user's password

        Accounts created through an external identity may set a first
        password without supplying a current one.
        """
        if user.password_hash:
            if not current_password or not verify_password(current_password, user.password_hash):
                raise ValidationError("Current password is incorrect")
        if current_password and current_password == new_password:
            raise ValidationError("New password must differ from the current one")

        user.password_hash = get_password_hash(new_password)
        db.commit()
        db.refresh(user)
        logger.info(f"Password changed for user: {user.id}")
        return user

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email).first()


# Singleton instance
user_service = UserService()
