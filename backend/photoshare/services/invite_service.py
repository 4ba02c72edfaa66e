"""Album invites and guest access."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from photoshare.core.exceptions import (
    AuthenticationError,
    InviteUnavailableError,
    ResourceNotFoundError,
    ValidationError,
)
from photoshare.core.security import create_guest_token, decode_guest_token
from photoshare.models.album import AlbumInvite, AlbumMember
from photoshare.services.rbac import Role, rbac_service

logger = logging.getLogger(__name__)

INVITE_SECRET_LENGTH = 16


@dataclass(frozen=True)
class InviteAcceptance:
    status: str
    album_id: str
    guest_token: Optional[str] = None


class InviteService:
    """One reusable invite per (album, role)."""

    @staticmethod
    def _aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
        return dt.replace(tzinfo=timezone.utc) if dt and dt.tzinfo is None else dt

    @staticmethod
    def create_invite(
        db: Session,
        user_id: str,
        album_id: str,
        role: Role,
        max_use: Optional[int] = None,
        expires_in_minutes: Optional[int] = None,
    ) -> AlbumInvite:
        """
        Create an invite, or return the existing one for this role

        Args:
            db: Database session
            user_id: Caller, needs editor access
            album_id: Album to invite into
            role: viewer or editor
            max_use: Optional cap on acceptances
            expires_in_minutes: Optional lifetime; 0 or None never expires

        Returns:
            AlbumInvite
        """
        if role is Role.OWNER:
            raise ValidationError("Invites can grant viewer or editor access only")
        rbac_service.require_role(db, user_id, album_id, Role.EDITOR)

        existing = (
            db.query(AlbumInvite)
            .filter(AlbumInvite.album_id == album_id, AlbumInvite.role == role.value)
            .first()
        )
        if existing:
            return existing

        invite = AlbumInvite(
            album_id=album_id,
            secret=secrets.token_urlsafe(INVITE_SECRET_LENGTH)[:INVITE_SECRET_LENGTH],
            role=role.value,
            max_use=max_use,
            expires_at=(
                datetime.now(timezone.utc) + timedelta(minutes=expires_in_minutes)
                if expires_in_minutes
                else None
            ),
            created_by=user_id,
        )
        db.add(invite)
        db.commit()
        db.refresh(invite)

        logger.info(f"User {user_id} created {role.value} invite {invite.id} for album {album_id}")
        return invite

    @staticmethod
    def _consume(db: Session, invite: AlbumInvite) -> None:
        """Count one use, refusing it if the invite filled up meanwhile"""
        counted = (
            db.query(AlbumInvite)
            .filter(
                AlbumInvite.id == invite.id,
                or_(
                    AlbumInvite.max_use.is_(None),
                    AlbumInvite.max_use == 0,
                    AlbumInvite.used_count < AlbumInvite.max_use,
                ),
            )
            .update(
                {AlbumInvite.used_count: AlbumInvite.used_count + 1},
                synchronize_session=False,
            )
        )
        if counted != 1:
            db.rollback()
            raise InviteUnavailableError("Invite limit reached")

    @staticmethod
    def accept_invite(
        db: Session,
        user_id: Optional[str],
        code: str,
        existing_guest_token: Optional[str] = None,
    ) -> InviteAcceptance:
        """
        Accept an invite code

        Signed-in users join the album (a viewer is upgraded by an editor
        invite). Anonymous callers holding a viewer invite get a guest token
        covering their previous guest albums plus this one.

        Raises:
            ValidationError: Malformed code or wrong secret
            ResourceNotFoundError: No such invite
            InviteUnavailableError: Invite expired or used up
            AuthenticationError: Editor invite accepted without signing in
        """
        invite_id, _, secret = code.strip().partition(".")
        if not invite_id or not secret:
            raise ValidationError("Invalid code format")

        invite = db.get(AlbumInvite, invite_id)
        if not invite:
            raise ResourceNotFoundError("Invite")

        expires_at = InviteService._aware_utc(invite.expires_at)
        if expires_at and datetime.now(timezone.utc) > expires_at:
            raise InviteUnavailableError("Invite expired")
        if invite.max_use and invite.used_count >= invite.max_use:
            raise InviteUnavailableError("Invite limit reached")
        if not secrets.compare_digest(invite.secret, secret):
            raise ValidationError("Invalid invite code")

        if user_id:
            member = (
                db.query(AlbumMember)
                .filter(AlbumMember.user_id == user_id, AlbumMember.album_id == invite.album_id)
                .first()
            )
            if member:
                if invite.role == Role.EDITOR.value and member.role == Role.VIEWER.value:
                    InviteService._consume(db, invite)
                    member.role = Role.EDITOR.value
                    db.commit()
                    return InviteAcceptance(status="upgraded", album_id=invite.album_id)
                return InviteAcceptance(status="already_member", album_id=invite.album_id)

            if rbac_service.role_of(db, user_id, invite.album_id) is Role.OWNER:
                return InviteAcceptance(status="already_member", album_id=invite.album_id)

            InviteService._consume(db, invite)
            db.add(AlbumMember(user_id=user_id, album_id=invite.album_id, role=invite.role))
            db.commit()
            logger.info(f"User {user_id} joined album {invite.album_id} as {invite.role}")
            return InviteAcceptance(status="joined", album_id=invite.album_id)

        if invite.role != Role.VIEWER.value:
            raise AuthenticationError("Sign in required to accept this invite")

        albums = decode_guest_token(existing_guest_token)
        albums.append(invite.album_id)
        guest_token = create_guest_token(albums)
        InviteService._consume(db, invite)
        db.commit()
        logger.info(f"Guest access granted to album {invite.album_id} via invite {invite.id}")
        return InviteAcceptance(
            status="guest_access",
            album_id=invite.album_id,
            guest_token=guest_token,
        )


invite_service = InviteService()
