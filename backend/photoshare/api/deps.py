"""API dependencies - identity resolution, authorization and metering"""

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session
from typing import List
import logging

from photoshare.api.cookies import set_session_cookies
from photoshare.config import settings
from photoshare.core.database import get_db
from photoshare.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    RateLimitExceededError,
)
from photoshare.core.metrics import AUTH_EVENTS, RATE_LIMITED
from photoshare.core.security import decode_guest_token
from photoshare.services.rate_limiter import RateLimitOutcome, rate_limiter
from photoshare.services.session_resolver import Identity, AuthVia, session_resolver

logger = logging.getLogger(__name__)


def _enforce_rate_limit(db: Session, identity: Identity) -> None:
    key = identity.api_key
    decision = rate_limiter.check_and_increment(db, key.id, key.minute_limit, key.daily_limit)
    if decision.allowed:
        return

    RATE_LIMITED.labels(decision.outcome.value).inc()
    if decision.outcome is RateLimitOutcome.MINUTE_EXCEEDED:
        message = f"Rate limit exceeded: {key.minute_limit} requests per minute"
    else:
        message = f"Daily limit exceeded: {key.daily_limit} requests per day"
    raise RateLimitExceededError(
        message,
        window=decision.outcome.value,
        retry_after=decision.retry_after_seconds,
    )


def get_identity(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
) -> Identity:
    """
    Resolve the request's credential once and meter API key traffic

    Args:
        request: Incoming request
        response: Response the renewed session cookies are attached to
        db: Database session

    Returns:
        Identity, anonymous when no credential validates

    Raises:
        RateLimitExceededError: API key over its minute or daily quota
    """
    identity = session_resolver.resolve(
        db,
        access_cookie=request.cookies.get(settings.ACCESS_COOKIE_NAME),
        authorization_header=request.headers.get("Authorization"),
        refresh_cookie=request.cookies.get(settings.REFRESH_COOKIE_NAME),
        allow_refresh=settings.SESSION_AUTO_REFRESH,
    )
    request.state.identity = identity

    if identity.via is AuthVia.REFRESH:
        access_token, refresh_token = identity.renewed_tokens
        set_session_cookies(response, access_token, refresh_token)
        AUTH_EVENTS.labels("auto_refresh").inc()

    if identity.is_api_key:
        # Picked up by the request logging middleware, 429s included.
        request.state.api_key_id = identity.api_key.id
        _enforce_rate_limit(db, identity)

    return identity


def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    """Any authenticated identity, API keys included"""
    if not identity.is_authenticated:
        raise AuthenticationError()
    return identity


def require_session(identity: Identity = Depends(require_user)) -> Identity:
    """
    An interactive session only

    Account settings and key management refuse API keys.
    """
    if identity.is_api_key:
        raise AuthorizationError("API keys cannot be used for this endpoint")
    return identity


def get_guest_album_ids(request: Request) -> List[str]:
    """Album ids granted by the guest cookie, empty when absent or invalid"""
    return decode_guest_token(request.cookies.get(settings.GUEST_COOKIE_NAME))
