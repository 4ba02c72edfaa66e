"""API key models"""

import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from photoshare.core.database import Base


class ApiKey(Base):
    """
    Long-lived programmatic credential.

    Only the bcrypt hash of the raw key is stored. Keys are revoked by
    setting revoked_at and are never deleted.
    """

    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    prefix = Column(String(16), nullable=False)
    key_hash = Column(String(255), nullable=False)
    minute_limit = Column(Integer, nullable=False)
    daily_limit = Column(Integer, nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="api_keys")

    __table_args__ = (
        Index("idx_api_keys_prefix_revoked", "prefix", "revoked_at"),
        Index("idx_api_keys_user", "user_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None

    def __repr__(self):
        return f"<ApiKey(id={self.id}, prefix='{self.prefix}', user_id={self.user_id})>"


class ApiKeyLog(Base):
    """One row per request made with an API key, rejected ones included."""

    __tablename__ = "api_key_logs"

    id = Column(Integer, primary_key=True, index=True)
    key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False)
    endpoint = Column(String(255), nullable=False)
    method = Column(String(10), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    status_code = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_api_key_logs_key_created", "key_id", "created_at"),
    )
