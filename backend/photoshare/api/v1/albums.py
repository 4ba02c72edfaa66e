"""Album access and membership routes"""

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import List

from photoshare.core.database import get_db
from photoshare.schemas.album import (
    AlbumCreate,
    AlbumResponse,
    MemberResponse,
    MemberRoleUpdate,
    InviteCreate,
    InviteResponse,
)
from photoshare.schemas.response import APIResponse
from photoshare.services.album_service import album_service
from photoshare.services.audit_service import audit_service
from photoshare.services.invite_service import invite_service
from photoshare.services.rbac import Role, rbac_service
from photoshare.services.session_resolver import Identity
from photoshare.api.deps import get_identity, get_guest_album_ids, require_user
from photoshare.models.album import Album

router = APIRouter()


def _album_response(album: Album, role: Role) -> AlbumResponse:
    return AlbumResponse(
        id=album.id,
        owner_id=album.owner_id,
        title=album.title,
        visibility=album.visibility,
        created_at=album.created_at,
        role=role.value,
    )


@router.post("/", response_model=AlbumResponse, status_code=status.HTTP_201_CREATED)
def create_album(
    data: AlbumCreate,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db)
):
    """Create an album owned by the caller"""
    album = album_service.create_album(db, identity.user_id, data.title.strip(), data.visibility.value)
    return _album_response(album, Role.OWNER)


@router.get("/{album_id}", response_model=AlbumResponse)
def get_album(
    album_id: str,
    identity: Identity = Depends(get_identity),
    guest_album_ids: List[str] = Depends(get_guest_album_ids),
    db: Session = Depends(get_db)
):
    """
    Get an album the caller can view

    Members, public albums and guest-token holders are all viewers at
    least; a private album the caller cannot see is reported missing.
    """
    role = rbac_service.require_role(db, identity.user_id, album_id, Role.VIEWER, guest_album_ids)
    return _album_response(db.get(Album, album_id), role)


@router.get("/{album_id}/members", response_model=List[MemberResponse])
def list_members(
    album_id: str,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db)
):
    """List album members (viewer access required)"""
    rbac_service.require_role(db, identity.user_id, album_id, Role.VIEWER)
    album = db.get(Album, album_id)
    return [
        MemberResponse(
            user_id=member.user_id,
            album_id=member.album_id,
            role=Role.OWNER.value if member.user_id == album.owner_id else member.role,
            joined_at=member.joined_at,
            is_original_owner=member.user_id == album.owner_id,
        )
        for member in album_service.list_members(db, album_id)
    ]


@router.patch("/{album_id}/members/{member_id}", response_model=MemberResponse)
def update_member_role(
    album_id: str,
    member_id: str,
    data: MemberRoleUpdate,
    request: Request,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db)
):
    """Change a member's role (owners only)"""
    member = rbac_service.change_member_role(
        db, identity.user_id, album_id, member_id, Role(data.role.value)
    )
    audit_service.log_event(
        db,
        user_id=identity.user_id,
        action="member_role_change",
        target_type="album",
        target_id=album_id,
        ip_address=request.client.host if request.client else None,
        metadata={"target_user_id": member_id, "new_role": member.role},
    )
    return MemberResponse(
        user_id=member.user_id,
        album_id=member.album_id,
        role=member.role,
        joined_at=member.joined_at,
    )


@router.delete("/{album_id}/members/{member_id}", response_model=APIResponse)
def remove_member(
    album_id: str,
    member_id: str,
    request: Request,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db)
):
    """Remove a member, or leave the album when member_id is the caller"""
    rbac_service.remove_member(db, identity.user_id, album_id, member_id)
    is_kick = member_id != identity.user_id
    audit_service.log_event(
        db,
        user_id=identity.user_id,
        action="member_removed" if is_kick else "member_left",
        target_type="album",
        target_id=album_id,
        ip_address=request.client.host if request.client else None,
        metadata={"target_user_id": member_id},
    )
    return APIResponse(message="Member removed" if is_kick else "Left album")


@router.post("/{album_id}/invite", response_model=InviteResponse)
def create_invite(
    album_id: str,
    data: InviteCreate,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db)
):
    """Create (or return the existing) invite for a role; editors and owners only"""
    invite = invite_service.create_invite(
        db,
        identity.user_id,
        album_id,
        Role(data.role.value),
        max_use=data.max_use,
        expires_in_minutes=data.expires_in_minutes,
    )
    return InviteResponse(
        code=invite.code,
        url=f"/invite/{invite.code}",
        role=invite.role,
        expires_at=invite.expires_at,
        max_use=invite.max_use,
    )
