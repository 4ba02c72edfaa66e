"""Album, membership and invite schemas"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class MemberRole(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"


class InviteRole(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"


class AlbumCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    visibility: Visibility = Visibility.PRIVATE


class AlbumResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    visibility: str
    created_at: Optional[datetime]
    role: Optional[str] = None

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    user_id: str
    album_id: str
    role: str
    joined_at: Optional[datetime]
    is_original_owner: bool = False

    class Config:
        from_attributes = True


class MemberRoleUpdate(BaseModel):
    role: MemberRole


class InviteCreate(BaseModel):
    role: InviteRole
    max_use: Optional[int] = Field(None, ge=1)
    expires_in_minutes: Optional[int] = Field(None, ge=0)


class InviteResponse(BaseModel):
    code: str
    url: str
    role: str
    expires_at: Optional[datetime] = None
    max_use: Optional[int] = None


class InviteAccept(BaseModel):
    code: str = Field(..., min_length=3, max_length=200)


class InviteAcceptResponse(BaseModel):
    success: bool = True
    status: str
    album_id: str
    public_access: bool = False
