"""Invite acceptance route"""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from photoshare.config import settings
from photoshare.core.database import get_db
from photoshare.schemas.album import InviteAccept, InviteAcceptResponse
from photoshare.services.invite_service import invite_service
from photoshare.services.session_resolver import Identity
from photoshare.api.cookies import set_guest_cookie
from photoshare.api.deps import get_identity

router = APIRouter()


@router.post("/accept", response_model=InviteAcceptResponse)
def accept_invite(
    data: InviteAccept,
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db)
):
    """
    Accept an invite code

    Signed-in callers become members. Anonymous callers with a viewer
    invite get a guest cookie scoped to the albums they were invited to.
    """
    result = invite_service.accept_invite(
        db,
        identity.user_id,
        data.code,
        existing_guest_token=request.cookies.get(settings.GUEST_COOKIE_NAME),
    )
    if result.guest_token:
        set_guest_cookie(response, result.guest_token)

    return InviteAcceptResponse(
        status=result.status,
        album_id=result.album_id,
        public_access=result.guest_token is not None,
    )
