"""Database models"""

from photoshare.models.user import User
from photoshare.models.security import RefreshToken, RateLimitCounter
from photoshare.models.api_key import ApiKey, ApiKeyLog
from photoshare.models.album import Album, AlbumMember, AlbumInvite
from photoshare.models.audit import AuditEvent

__all__ = [
    "User",
    "RefreshToken",
    "RateLimitCounter",
    "ApiKey",
    "ApiKeyLog",
    "Album",
    "AlbumMember",
    "AlbumInvite",
    "AuditEvent",
]
