"""Security-related persistence models."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, PrimaryKeyConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from photoshare.core.database import Base


class RefreshToken(Base):
    """One outstanding refresh session. The id is the token's jti."""

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    family_id = Column(String(128), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", overlaps="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_user", "user_id"),
    )


class RateLimitCounter(Base):
    """Request count for one API key in one UTC minute."""

    __tablename__ = "rate_limits"

    key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False)
    window_start = Column(DateTime(timezone=True), nullable=False)
    request_count = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        PrimaryKeyConstraint("key_id", "window_start", name="pk_rate_limits"),
    )
