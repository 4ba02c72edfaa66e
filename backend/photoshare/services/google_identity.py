"""Google ID token verification for external sign-in"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
import threading
import time

import httpx
from jose import JWTError, jwt

from photoshare.config import settings
from photoshare.core.exceptions import AuthenticationError, BusinessLogicError

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")


@dataclass(frozen=True)
class ExternalIdentity:
    subject: str
    email: str
    name: Optional[str] = None


class GoogleIdentityVerifier:
    """
    Verify Google ID tokens against Google's published signing keys

    The key set is fetched over HTTPS and cached for
    GOOGLE_JWKS_CACHE_SECONDS.
    """

    def __init__(self):
        self._keys: Optional[Dict[str, Any]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def _fetch_keys(self) -> Dict[str, Any]:
        response = httpx.get(settings.GOOGLE_JWKS_URL, timeout=10.0, follow_redirects=False)
        response.raise_for_status()
        keys = response.json()
        if not isinstance(keys, dict) or "keys" not in keys:
            raise ValueError("Malformed key set")
        return keys

    def signing_keys(self) -> Dict[str, Any]:
        with self._lock:
            stale = time.monotonic() - self._fetched_at > settings.GOOGLE_JWKS_CACHE_SECONDS
            if self._keys is None or stale:
                self._keys = self._fetch_keys()
                self._fetched_at = time.monotonic()
                logger.info("Fetched Google signing keys")
            return self._keys

    def verify(self, id_token: str) -> ExternalIdentity:
        """
        Verify an ID token and extract the identity it asserts

        Args:
            id_token: Token issued to this application's Google client id

        Returns:
            ExternalIdentity

        Raises:
            BusinessLogicError: Google sign-in is not configured
            AuthenticationError: Token invalid, expired, for another
                audience or issuer, or without a verified email
        """
        if not settings.GOOGLE_CLIENT_ID:
            raise BusinessLogicError("Google sign-in is not configured")

        try:
            keys = self.signing_keys()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Could not fetch Google signing keys: {e}")
            raise AuthenticationError("Authentication failed")

        try:
            payload = jwt.decode(
                id_token,
                keys,
                algorithms=["RS256"],
                audience=settings.GOOGLE_CLIENT_ID,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            logger.warning(f"Rejected Google ID token: {e}")
            raise AuthenticationError("Authentication failed")

        if payload.get("iss") not in GOOGLE_ISSUERS:
            logger.warning(f"Rejected Google ID token from issuer {payload.get('iss')}")
            raise AuthenticationError("Authentication failed")

        subject = payload.get("sub")
        email = (payload.get("email") or "").strip().lower()
        if not subject or not email or payload.get("email_verified") is not True:
            raise AuthenticationError("Authentication failed")

        return ExternalIdentity(subject=str(subject), email=email, name=payload.get("name"))


google_identity = GoogleIdentityVerifier()
