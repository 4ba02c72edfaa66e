"""Pydantic schemas for API validation"""

from photoshare.schemas.user import (
    UserRegister,
    UserResponse,
    UserLogin,
    PasswordChange,
    TokenResponse,
)
from photoshare.schemas.api_key import ApiKeyCreate, ApiKeyResponse, ApiKeyCreated
from photoshare.schemas.album import (
    AlbumCreate,
    AlbumResponse,
    MemberResponse,
    MemberRoleUpdate,
    InviteCreate,
    InviteResponse,
    InviteAccept,
    InviteAcceptResponse,
)
from photoshare.schemas.response import APIResponse, ErrorResponse, HealthResponse
from photoshare.schemas.audit import AuditEventResponse

__all__ = [
    "UserRegister", "UserResponse", "UserLogin", "PasswordChange", "TokenResponse",
    "ApiKeyCreate", "ApiKeyResponse", "ApiKeyCreated",
    "AlbumCreate", "AlbumResponse", "MemberResponse", "MemberRoleUpdate",
    "InviteCreate", "InviteResponse", "InviteAccept", "InviteAcceptResponse",
    "AuditEventResponse",
    "APIResponse", "ErrorResponse", "HealthResponse",
]
