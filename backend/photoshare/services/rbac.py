"""Album role resolution and membership mutations.

Every authorization decision about an album goes through this module so the
original-owner and joint-owner rules hold in one place.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from photoshare.core.exceptions import (
    AuthorizationError,
    BusinessLogicError,
    ResourceNotFoundError,
)
from photoshare.models.album import Album, AlbumMember

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Album roles, ordered viewer < editor < owner"""
    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Role.VIEWER: 1, Role.EDITOR: 2, Role.OWNER: 3}


def has_role(actual: Optional[Role], required: Role) -> bool:
    if actual is None:
        return False
    return actual.rank >= required.rank


class RbacService:
    """Resolve and mutate album roles"""

    @staticmethod
    def _membership(db: Session, user_id: str, album_id: str) -> Optional[AlbumMember]:
        return (
            db.query(AlbumMember)
            .filter(AlbumMember.user_id == user_id, AlbumMember.album_id == album_id)
            .first()
        )

    @staticmethod
    def role_of(
        db: Session,
        user_id: Optional[str],
        album_id: str,
        guest_album_ids: Iterable[str] = (),
    ) -> Optional[Role]:
        """
        Effective role of a user (or anonymous guest) on an album

        Resolution: the album's original owner, then the membership row,
        then public visibility, then the guest token's album scope.

        Args:
            db: Database session
            user_id: Caller, None for anonymous requests
            album_id: Album id
            guest_album_ids: Albums granted by a guest token

        Returns:
            Role or None when the caller has no access
        """
        album = db.get(Album, album_id)
        if album is None:
            return None

        if user_id:
            # The original owner cannot be demoted, whatever the membership row says.
            if album.owner_id == user_id:
                return Role.OWNER
            member = RbacService._membership(db, user_id, album_id)
            if member:
                return Role(member.role)

        if album.is_public:
            return Role.VIEWER
        if album_id in set(guest_album_ids):
            return Role.VIEWER
        return None

    @staticmethod
    def require_role(
        db: Session,
        user_id: Optional[str],
        album_id: str,
        required: Role,
        guest_album_ids: Iterable[str] = (),
    ) -> Role:
        """
        Resolve the caller's role and insist on at least `required`

        Raises:
            ResourceNotFoundError: Album missing, or invisible to the caller
            AuthorizationError: Caller can see the album but lacks the role
        """
        role = RbacService.role_of(db, user_id, album_id, guest_album_ids)
        if role is None:
            raise ResourceNotFoundError("Album")
        if not has_role(role, required):
            raise AuthorizationError(f"{required.value.capitalize()} access required")
        return role

    @staticmethod
    def _album_or_404(db: Session, album_id: str) -> Album:
        album = db.get(Album, album_id)
        if album is None:
            raise ResourceNotFoundError("Album")
        return album

    @staticmethod
    def add_member(db: Session, album_id: str, user_id: str, role: Role) -> AlbumMember:
        member = AlbumMember(user_id=user_id, album_id=album_id, role=role.value)
        db.add(member)
        db.commit()
        db.refresh(member)
        return member

    @staticmethod
    def change_member_role(
        db: Session,
        actor_id: str,
        album_id: str,
        target_user_id: str,
        new_role: Role,
    ) -> AlbumMember:
        """
        Change a member's role

        Only owners may change roles. The original owner's role is fixed,
        and joint owners' roles can only be changed by the original owner.
        """
        album = RbacService._album_or_404(db, album_id)
        if not has_role(RbacService.role_of(db, actor_id, album_id), Role.OWNER):
            raise AuthorizationError("Only owners can change member roles")
        if target_user_id == album.owner_id:
            raise AuthorizationError("Cannot change the original owner's role")

        member = RbacService._membership(db, target_user_id, album_id)
        if not member:
            raise ResourceNotFoundError("Member")
        if member.role == Role.OWNER.value and actor_id != album.owner_id:
            raise AuthorizationError("Only the original owner can change a joint owner's role")

        member.role = new_role.value
        db.commit()
        db.refresh(member)

        logger.info(
            f"User {actor_id} set role of {target_user_id} on album {album_id} to {new_role.value}"
        )
        return member

    @staticmethod
    def remove_member(db: Session, actor_id: str, album_id: str, target_user_id: str) -> None:
        """
        Remove a member, or leave an album when actor and target match

        Raises:
            BusinessLogicError: The original owner tried to leave
            AuthorizationError: Removal not permitted for this actor
            ResourceNotFoundError: Album or membership missing
        """
        album = RbacService._album_or_404(db, album_id)
        leaving = actor_id == target_user_id

        if target_user_id == album.owner_id:
            if leaving:
                raise BusinessLogicError("Original owner cannot leave. Delete the album instead.")
            raise AuthorizationError("Cannot remove the original owner")

        member = RbacService._membership(db, target_user_id, album_id)

        if not leaving:
            if not has_role(RbacService.role_of(db, actor_id, album_id), Role.OWNER):
                raise AuthorizationError("Only owners can remove members")
            if member and member.role == Role.OWNER.value and actor_id != album.owner_id:
                raise AuthorizationError("Only the original owner can remove joint owners")

        if not member:
            raise ResourceNotFoundError("Member")

        db.delete(member)
        db.commit()
        logger.info(
            f"User {target_user_id} {'left' if leaving else 'was removed from'} album {album_id}"
        )


rbac_service = RbacService()
