"""User account routes"""

import json

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session
from typing import List

from photoshare.core.database import get_db
from photoshare.schemas.user import PasswordChange, UserResponse
from photoshare.schemas.audit import AuditEventResponse
from photoshare.services.user_service import user_service
from photoshare.services.token_service import token_service
from photoshare.services.audit_service import audit_service
from photoshare.api.cookies import clear_session_cookies
from photoshare.api.deps import require_session
from photoshare.services.session_resolver import Identity

router = APIRouter()


@router.get("/me", response_model=UserResponse)
def get_my_profile(
    identity: Identity = Depends(require_session)
):
    """
    Get current user profile

    Args:
        identity: Current interactive session

    Returns:
        User profile
    """
    return UserResponse.model_validate(identity.user)


@router.put("/me/password")
def change_password(
    data: PasswordChange,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_session),
    db: Session = Depends(get_db)
):
    """
    Change password and end every session of this user

    Args:
        data: Current and new password
        identity: Current interactive session
        db: Database session

    Returns:
        Number of sessions revoked
    """
    user_service.change_password(db, identity.user, data.current_password, data.new_password)
    revoked = token_service.revoke_all_for_user(db, identity.user_id)
    audit_service.log_event(
        db,
        user_id=identity.user_id,
        action="password_changed",
        target_type="user",
        target_id=identity.user_id,
        ip_address=request.client.host if request.client else None,
        metadata={"sessions_revoked": revoked},
    )
    clear_session_cookies(response)

    return {
        "success": True,
        "message": "Password updated. Please sign in again.",
        "sessions_revoked": revoked
    }


@router.get("/me/audit-events", response_model=List[AuditEventResponse])
def get_my_audit_events(
    limit: int = 50,
    identity: Identity = Depends(require_session),
    db: Session = Depends(get_db)
):
    """Recent security events for the current user"""
    events = audit_service.events_for_user(db, identity.user_id, limit=min(max(limit, 1), 200))
    return [
        AuditEventResponse(
            id=event.id,
            user_id=event.user_id,
            action=event.action,
            target_type=event.target_type,
            target_id=event.target_id,
            ip_address=event.ip_address,
            metadata=json.loads(event.metadata_json or "{}"),
            created_at=event.created_at,
        )
        for event in events
    ]
