"""Authentication routes - sessions and API keys"""

from fastapi import APIRouter, Depends, status, Request, Response
from sqlalchemy.orm import Session
from typing import List

from photoshare.core.database import get_db
from photoshare.config import settings
from photoshare.schemas.user import GoogleSignIn, UserLogin, UserRegister, TokenResponse, UserResponse
from photoshare.schemas.api_key import ApiKeyCreate, ApiKeyResponse, ApiKeyCreated
from photoshare.schemas.response import APIResponse
from photoshare.services.user_service import user_service
from photoshare.services.token_service import token_service
from photoshare.services.api_key_service import api_key_service
from photoshare.services.audit_service import audit_service
from photoshare.services.google_identity import google_identity
from photoshare.api.cookies import set_session_cookies, clear_session_cookies
from photoshare.api.deps import get_identity, require_user, require_session
from photoshare.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ApiKeyLimitReachedError,
    CredentialTheftDetected,
    ResourceNotFoundError,
)
from photoshare.core.metrics import AUTH_EVENTS
from photoshare.models.user import User
from photoshare.services.session_resolver import Identity

router = APIRouter()


def _client_ip(request: Request):
    return request.client.host if request.client else None


def _session_response(response: Response, user: User, access_token: str, refresh_token: str) -> TokenResponse:
    set_session_cookies(response, access_token, refresh_token)
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user)
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: UserRegister,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Register a password account and start a session

    Args:
        data: Email, name and password
        db: Database session

    Returns:
        Session tokens and user info
    """
    user = user_service.register_user(db, data)
    access_token, refresh_token = token_service.issue_session(db, user, remember=data.remember)
    audit_service.log_event(
        db,
        user_id=user.id,
        action="register",
        target_type="user",
        target_id=user.id,
        ip_address=_client_ip(request),
    )
    AUTH_EVENTS.labels("register").inc()
    return _session_response(response, user, access_token, refresh_token)


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate user and set session cookies

    Args:
        credentials: Email, password and remember flag
        db: Database session

    Returns:
        Session tokens and user info
    """
    try:
        user = user_service.authenticate_user(db, credentials.email, credentials.password)
    except AuthenticationError:
        AUTH_EVENTS.labels("login_failed").inc()
        raise

    access_token, refresh_token = token_service.issue_session(db, user, remember=credentials.remember)
    audit_service.log_event(
        db,
        user_id=user.id,
        action="login",
        target_type="user",
        target_id=user.id,
        ip_address=_client_ip(request),
        metadata={"remember": credentials.remember},
    )
    AUTH_EVENTS.labels("login").inc()
    return _session_response(response, user, access_token, refresh_token)


@router.post("/google", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def google_sign_in(
    data: GoogleSignIn,
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db)
):
    """
    Sign in with a Google ID token and start a session

    The first sign-in creates the account, or links an existing account
    with the same email.
    """
    if identity.is_api_key:
        raise AuthorizationError("API keys cannot be used for this endpoint")

    try:
        external = google_identity.verify(data.id_token)
        user = user_service.get_or_create_external_user(db, external)
    except AuthenticationError:
        AUTH_EVENTS.labels("google_failed").inc()
        raise

    access_token, refresh_token = token_service.issue_session(db, user, remember=data.remember)
    audit_service.log_event(
        db,
        user_id=user.id,
        action="google_sign_in",
        target_type="user",
        target_id=user.id,
        ip_address=_client_ip(request),
        metadata={"remember": data.remember},
    )
    AUTH_EVENTS.labels("google_sign_in").inc()
    return _session_response(response, user, access_token, refresh_token)


@router.post("/refresh", response_model=TokenResponse)
def refresh_session(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Rotate the refresh cookie into a new session pair

    The refresh token is only ever read from its cookie.
    """
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if not token:
        raise AuthenticationError()

    try:
        user, access_token, refresh_token = token_service.rotate_refresh_token(db, token)
    except CredentialTheftDetected:
        AUTH_EVENTS.labels("refresh_reuse").inc()
        raise
    except AuthenticationError:
        AUTH_EVENTS.labels("refresh_failed").inc()
        raise

    AUTH_EVENTS.labels("refresh").inc()
    return _session_response(response, user, access_token, refresh_token)


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Logout endpoint - delete the refresh session and clear cookies

    Works without a valid access token so an expired session can still
    be closed.
    """
    revoked = token_service.revoke_refresh_token(
        db, request.cookies.get(settings.REFRESH_COOKIE_NAME)
    )
    clear_session_cookies(response)
    AUTH_EVENTS.labels("logout").inc()

    return {
        "success": True,
        "message": "Logged out successfully",
        "refresh_token_revoked": revoked
    }


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    identity: Identity = Depends(require_user)
):
    """
    Get current user information

    Returns:
        User information
    """
    return UserResponse.model_validate(identity.user)


@router.get("/api-keys", response_model=List[ApiKeyResponse])
def list_api_keys(
    identity: Identity = Depends(require_session),
    db: Session = Depends(get_db)
):
    """List active API keys with current usage"""
    keys = api_key_service.list_active(db, identity.user_id)
    stats = api_key_service.usage_stats(db, [key.id for key in keys])
    return [
        ApiKeyResponse.model_validate(key).model_copy(update=stats[key.id])
        for key in keys
    ]


@router.post("/api-keys", response_model=ApiKeyCreated, status_code=status.HTTP_201_CREATED)
def create_api_key(
    data: ApiKeyCreate,
    request: Request,
    identity: Identity = Depends(require_session),
    db: Session = Depends(get_db)
):
    """
    Generate an API key

    The raw key is in this response only; it cannot be retrieved again.
    """
    if api_key_service.count_active(db, identity.user_id) >= settings.MAX_API_KEYS_PER_USER:
        raise ApiKeyLimitReachedError(settings.MAX_API_KEYS_PER_USER)

    raw_key, record = api_key_service.generate(db, identity.user_id, data.name.strip())
    audit_service.log_event(
        db,
        user_id=identity.user_id,
        action="api_key_generated",
        target_type="api_key",
        target_id=record.id,
        ip_address=_client_ip(request),
        metadata={"name": record.name, "prefix": record.prefix},
    )
    return ApiKeyCreated(key=raw_key, api_key=ApiKeyResponse.model_validate(record))


@router.delete("/api-keys/{key_id}", response_model=APIResponse)
def revoke_api_key(
    key_id: str,
    request: Request,
    identity: Identity = Depends(require_session),
    db: Session = Depends(get_db)
):
    """Revoke an API key"""
    record = api_key_service.revoke(db, key_id, identity.user_id)
    if not record:
        raise ResourceNotFoundError("API key")

    audit_service.log_event(
        db,
        user_id=identity.user_id,
        action="api_key_revoked",
        target_type="api_key",
        target_id=record.id,
        ip_address=_client_ip(request),
    )
    return APIResponse(message="API key revoked", data={"id": record.id})


@router.post("/api-keys/{key_id}/rotate", response_model=ApiKeyCreated)
def rotate_api_key(
    key_id: str,
    request: Request,
    identity: Identity = Depends(require_session),
    db: Session = Depends(get_db)
):
    """Replace an API key with a new one; the old key stops working"""
    raw_key, record = api_key_service.rotate(db, key_id, identity.user_id)
    audit_service.log_event(
        db,
        user_id=identity.user_id,
        action="api_key_rotated",
        target_type="api_key",
        target_id=record.id,
        ip_address=_client_ip(request),
        metadata={"previous_key_id": key_id},
    )
    return ApiKeyCreated(key=raw_key, api_key=ApiKeyResponse.model_validate(record))
