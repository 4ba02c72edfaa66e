"""Refresh token rotation and revocation service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import logging

from sqlalchemy.orm import Session

from photoshare.config import settings
from photoshare.core.exceptions import AuthenticationError, CredentialTheftDetected
from photoshare.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_password_hash,
    new_family_id,
    new_session_id,
    verify_password,
)
from photoshare.models.security import RefreshToken
from photoshare.models.user import User
from photoshare.services.audit_service import audit_service

logger = logging.getLogger(__name__)


class TokenService:
    """
    Manage refresh sessions.

    A session is one RefreshToken row. Every successful rotation deletes
    the row and inserts a new one in the same family, so a presented token
    whose row is gone while its family lives on is a replay.
    """

    @staticmethod
    def _aware_utc(dt: datetime) -> datetime:
        return dt.replace(tzinfo=timezone.utc) if dt and dt.tzinfo is None else dt

    @staticmethod
    def _create_session(
        db: Session,
        *,
        user_id: str,
        family_id: str,
        ttl: timedelta,
    ) -> str:
        session_id = new_session_id()
        refresh_token = create_refresh_token(user_id, session_id, family_id, ttl=ttl)
        record = RefreshToken(
            id=session_id,
            user_id=user_id,
            family_id=family_id,
            token_hash=get_password_hash(refresh_token),
            expires_at=datetime.now(timezone.utc) + ttl,
        )
        db.add(record)
        db.commit()
        return refresh_token

    @staticmethod
    def session_ttl(remember: bool = False) -> timedelta:
        days = settings.REFRESH_TOKEN_REMEMBER_DAYS if remember else settings.REFRESH_TOKEN_EXPIRE_DAYS
        return timedelta(days=min(days, settings.REFRESH_TOKEN_MAX_DAYS))

    @staticmethod
    def issue_session(db: Session, user: User, remember: bool = False) -> Tuple[str, str]:
        """
        Start a new refresh session for a freshly authenticated user

        Args:
            db: Database session
            user: Authenticated user
            remember: Use the long "remember me" lifetime

        Returns:
            Tuple of (access token, refresh token)
        """
        refresh_token = TokenService._create_session(
            db,
            user_id=user.id,
            family_id=new_family_id(),
            ttl=TokenService.session_ttl(remember),
        )
        return create_access_token(user.id), refresh_token

    @staticmethod
    def revoke_family(db: Session, family_id: str) -> int:
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.family_id == family_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        return count

    @staticmethod
    def _report_theft(db: Session, payload: dict, reason: str) -> None:
        logger.warning(
            f"Refresh token reuse detected for user {payload['sub']} "
            f"(session {payload['jti']}, {reason}); session revoked"
        )
        audit_service.log_event(
            db,
            user_id=payload["sub"] if db.get(User, payload["sub"]) else None,
            action="refresh_reuse_detected",
            target_type="refresh_session",
            target_id=payload["jti"],
            metadata={"family_id": payload["fam"], "reason": reason},
        )

    @staticmethod
    def rotate_refresh_token(db: Session, refresh_token: str) -> Tuple[User, str, str]:
        """
        Exchange a refresh token for a new access/refresh pair, once

        Args:
            db: Database session
            refresh_token: Token presented by the client

        Returns:
            Tuple of (user, new access token, new refresh token)

        Raises:
            AuthenticationError: Token invalid, unknown, expired or already
                rotated by a concurrent request
            CredentialTheftDetected: A rotated or forged token was replayed;
                the affected session has been revoked
        """
        payload = decode_refresh_token(refresh_token)
        if not payload:
            raise AuthenticationError()

        session_id = payload["jti"]
        family_id = payload["fam"]

        record = db.get(RefreshToken, session_id)
        if record is None:
            live_in_family = (
                db.query(RefreshToken)
                .filter(
                    RefreshToken.family_id == family_id,
                    RefreshToken.user_id == payload["sub"],
                )
                .count()
            )
            if live_in_family:
                TokenService.revoke_family(db, family_id)
                TokenService._report_theft(db, payload, "rotated token replayed")
                raise CredentialTheftDetected(session_id=session_id, family_id=family_id)
            raise AuthenticationError()

        if record.user_id != payload["sub"] or not verify_password(refresh_token, record.token_hash):
            db.delete(record)
            db.commit()
            TokenService._report_theft(db, payload, "token does not match session")
            raise CredentialTheftDetected(session_id=session_id, family_id=record.family_id)

        if TokenService._aware_utc(record.expires_at) <= datetime.now(timezone.utc):
            db.delete(record)
            db.commit()
            raise AuthenticationError()

        user = db.get(User, record.user_id)
        if not user:
            db.delete(record)
            db.commit()
            raise AuthenticationError()

        # A remembered session renews as long as it was first granted.
        granted = timedelta(seconds=payload["exp"] - payload["iat"])
        ttl = min(granted, timedelta(days=settings.REFRESH_TOKEN_MAX_DAYS))

        # Claim the session: only one presenter can delete the row.
        family_id = record.family_id
        claimed = (
            db.query(RefreshToken)
            .filter(
                RefreshToken.id == session_id,
                RefreshToken.token_hash == record.token_hash,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        if claimed != 1:
            logger.info(f"Refresh session {session_id} already rotated by a concurrent request")
            raise AuthenticationError()

        new_refresh = TokenService._create_session(
            db,
            user_id=user.id,
            family_id=family_id,
            ttl=ttl,
        )
        new_access = create_access_token(user.id)
        logger.info(f"Rotated refresh session {session_id} for user {user.id}")
        return user, new_access, new_refresh

    @staticmethod
    def revoke_refresh_token(db: Session, refresh_token: Optional[str]) -> bool:
        """Delete the session a refresh token belongs to (logout)."""
        payload = decode_refresh_token(refresh_token)
        if not payload:
            return False
        record = db.get(RefreshToken, payload["jti"])
        if not record or record.user_id != payload["sub"]:
            return False
        db.delete(record)
        db.commit()
        return True

    @staticmethod
    def revoke_all_for_user(db: Session, user_id: str) -> int:
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(f"Revoked {count} refresh sessions for user {user_id}")
        return count


token_service = TokenService()
