"""Album, membership and invite models"""

import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
    CheckConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from photoshare.core.database import Base


class Album(Base):
    """Album columns read by access control. owner_id is the original owner."""

    __tablename__ = "albums"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    visibility = Column(String(10), nullable=False, default="private")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("AlbumMember", back_populates="album", cascade="all, delete-orphan")
    invites = relationship("AlbumInvite", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("visibility IN ('public', 'private')", name="chk_album_visibility"),
        Index("idx_albums_owner", "owner_id"),
    )

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"


class AlbumMember(Base):
    """Explicit album role for a user."""

    __tablename__ = "album_members"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    album_id = Column(String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(10), nullable=False, default="viewer")
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="memberships")
    album = relationship("Album", back_populates="members")

    __table_args__ = (
        PrimaryKeyConstraint("user_id", "album_id", name="pk_album_members"),
        CheckConstraint("role IN ('viewer', 'editor', 'owner')", name="chk_member_role"),
        Index("idx_album_members_album", "album_id"),
    )


class AlbumInvite(Base):
    """Shareable invite; the code handed out is '<id>.<secret>'."""

    __tablename__ = "album_invites"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    album_id = Column(String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False)
    secret = Column(String(64), nullable=False)
    role = Column(String(10), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_use = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('viewer', 'editor')", name="chk_invite_role"),
        Index("idx_album_invites_album_role", "album_id", "role"),
    )

    @property
    def code(self) -> str:
        return f"{self.id}.{self.secret}"
