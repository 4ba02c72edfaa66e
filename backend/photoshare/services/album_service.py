"""Album service - the album rows access control reads"""

from typing import List
import logging

from sqlalchemy.orm import Session

from photoshare.models.album import Album, AlbumMember
from photoshare.services.rbac import Role, rbac_service

logger = logging.getLogger(__name__)


class AlbumService:
    """Service for album management"""

    @staticmethod
    def create_album(db: Session, owner_id: str, title: str, visibility: str = "private") -> Album:
        """
        Create an album and record its creator as original owner

        The creator also gets an owner membership row so member listings
        include them.
        """
        album = Album(owner_id=owner_id, title=title, visibility=visibility)
        db.add(album)
        db.commit()
        db.refresh(album)

        rbac_service.add_member(db, album.id, owner_id, Role.OWNER)
        logger.info(f"Created album {album.id} for user {owner_id}")
        return album

    @staticmethod
    def list_members(db: Session, album_id: str) -> List[AlbumMember]:
        return (
            db.query(AlbumMember)
            .filter(AlbumMember.album_id == album_id)
            .order_by(AlbumMember.joined_at.asc())
            .all()
        )


album_service = AlbumService()
