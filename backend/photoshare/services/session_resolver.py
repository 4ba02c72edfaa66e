"""Resolve the credential on an inbound request to a single identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from photoshare.core.exceptions import AuthenticationError
from photoshare.core.security import decode_access_token
from photoshare.models.api_key import ApiKey
from photoshare.models.user import User
from photoshare.services.api_key_service import api_key_service
from photoshare.services.token_service import token_service

logger = logging.getLogger(__name__)

AUTH_SCHEMES = ("bearer", "api-key")


class AuthVia(str, Enum):
    NONE = "none"
    COOKIE = "cookie"
    BEARER = "bearer"
    API_KEY = "api_key"
    REFRESH = "refresh"


@dataclass(frozen=True)
class Identity:
    """
    Who is making the request and how they proved it.

    Resolved once per request and passed down explicitly. renewed_tokens
    is set only when the identity came from refresh auto-renewal, so the
    transport layer can hand the new pair back to the client.
    """

    via: AuthVia = AuthVia.NONE
    user: Optional[User] = None
    api_key: Optional[ApiKey] = None
    renewed_tokens: Optional[Tuple[str, str]] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_api_key(self) -> bool:
        return self.via is AuthVia.API_KEY

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None


ANONYMOUS = Identity()


def parse_authorization(header: Optional[str]) -> Optional[str]:
    """Return the credential from 'Bearer <value>' or 'Api-Key <value>'."""
    if not header:
        return None
    scheme, _, value = header.strip().partition(" ")
    if scheme.lower() not in AUTH_SCHEMES:
        return None
    value = value.strip()
    return value or None


class SessionResolver:
    """Order: cookie access token, Authorization header, refresh renewal."""

    @staticmethod
    def _user_from_access_token(db: Session, token: Optional[str]) -> Optional[User]:
        payload = decode_access_token(token)
        if not payload:
            return None
        return db.get(User, payload["sub"])

    @staticmethod
    def resolve(
        db: Session,
        access_cookie: Optional[str] = None,
        authorization_header: Optional[str] = None,
        refresh_cookie: Optional[str] = None,
        allow_refresh: bool = True,
    ) -> Identity:
        """
        Resolve request credentials to an Identity

        The first credential that validates wins; an invalid one never
        blocks the next.

        Args:
            db: Database session
            access_cookie: Access token cookie value
            authorization_header: Raw Authorization header
            refresh_cookie: Refresh token cookie value
            allow_refresh: Attempt refresh auto-renewal as a last resort

        Returns:
            Identity: ANONYMOUS when nothing validates
        """
        user = SessionResolver._user_from_access_token(db, access_cookie)
        if user:
            return Identity(via=AuthVia.COOKIE, user=user)

        credential = parse_authorization(authorization_header)
        if credential:
            if api_key_service.is_api_key(credential):
                verified = api_key_service.verify(db, credential)
                if verified:
                    key_user, key = verified
                    return Identity(via=AuthVia.API_KEY, user=key_user, api_key=key)
            else:
                user = SessionResolver._user_from_access_token(db, credential)
                if user:
                    return Identity(via=AuthVia.BEARER, user=user)

        if allow_refresh and refresh_cookie:
            try:
                user, access_token, refresh_token = token_service.rotate_refresh_token(
                    db, refresh_cookie
                )
            except AuthenticationError:
                # Includes reuse detection; the session is already revoked.
                return ANONYMOUS
            logger.info(f"Session for user {user.id} renewed from refresh cookie")
            return Identity(
                via=AuthVia.REFRESH,
                user=user,
                renewed_tokens=(access_token, refresh_token),
            )

        return ANONYMOUS


session_resolver = SessionResolver()
