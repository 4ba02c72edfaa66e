"""User model"""

import uuid

from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from photoshare.core.database import Base


class User(Base):
    """Identity anchor for sessions, API keys and album memberships"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=True)  # null for external-identity-only accounts
    google_id = Column(String(255), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True))

    # Relationships
    refresh_tokens = relationship("RefreshToken", cascade="all, delete-orphan")
    api_keys = relationship("ApiKey", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship("AlbumMember", back_populates="user", cascade="all, delete-orphan")
    audit_events = relationship("AuditEvent")

    __table_args__ = (
        Index('idx_users_email', 'email'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None
        }
