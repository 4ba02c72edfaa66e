"""Security utilities - signed credentials and secret hashing"""

import base64
import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import bcrypt
from jose import JWTError, jwt

from photoshare.config import settings


class TokenKind(str, Enum):
    """Signed credential kinds. Each kind has its own signing secret."""
    ACCESS = "access"
    REFRESH = "refresh"
    GUEST = "guest"


def _secret_for(kind: TokenKind) -> str:
    if kind is TokenKind.ACCESS:
        return settings.ACCESS_TOKEN_SECRET
    if kind is TokenKind.REFRESH:
        return settings.REFRESH_TOKEN_SECRET
    return settings.GUEST_TOKEN_SECRET


def _prepare_secret(secret: str) -> bytes:
    # bcrypt only reads 72 bytes; refresh JWTs share a long common header.
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.b64encode(digest)


def get_password_hash(password: str) -> str:
    """
    Hash a secret using bcrypt

    Used for login passwords as well as refresh-token and API-key secrets,
    so a database read alone never yields a usable credential.

    Args:
        password: Plain text secret

    Returns:
        str: Salted bcrypt hash
    """
    return bcrypt.hashpw(
        _prepare_secret(password),
        bcrypt.gensalt()
    ).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a secret against its hash

    Args:
        plain_password: Plain text secret
        hashed_password: Stored bcrypt hash

    Returns:
        bool: True if the secret matches
    """
    try:
        return bcrypt.checkpw(
            _prepare_secret(plain_password),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        return False


def issue_token(kind: TokenKind, claims: Dict[str, Any], ttl: timedelta) -> str:
    """
    Sign a credential of the given kind

    Args:
        kind: Token kind, selects the signing secret
        claims: Payload claims
        ttl: Lifetime from now

    Returns:
        str: Encoded JWT
    """
    now = datetime.now(timezone.utc)
    to_encode = dict(claims)
    to_encode.update({
        "typ": kind.value,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    })
    return jwt.encode(to_encode, _secret_for(kind), algorithm=settings.ALGORITHM)


def _has_required_claims(kind: TokenKind, payload: Dict[str, Any]) -> bool:
    if payload.get("typ") != kind.value:
        return False
    if not isinstance(payload.get("exp"), int) or not isinstance(payload.get("iat"), int):
        return False
    if kind is TokenKind.GUEST:
        albums = payload.get("albums")
        return isinstance(albums, list) and all(isinstance(a, str) for a in albums)
    if not isinstance(payload.get("sub"), str) or not payload["sub"]:
        return False
    if kind is TokenKind.REFRESH:
        return isinstance(payload.get("jti"), str) and isinstance(payload.get("fam"), str)
    return True


def verify_token(kind: TokenKind, token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Verify signature, expiry and shape of a credential

    Every failure (bad signature, expired, wrong kind, missing claims)
    returns None; callers cannot tell the cases apart.

    Args:
        kind: Expected token kind
        token: Encoded JWT

    Returns:
        Optional[Dict]: Claims or None if invalid
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, _secret_for(kind), algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload, dict) or not _has_required_claims(kind, payload):
        return None
    return payload


def create_access_token(user_id: str) -> str:
    return issue_token(
        TokenKind.ACCESS,
        {"sub": user_id},
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(
    user_id: str,
    session_id: str,
    family_id: str,
    ttl: Optional[timedelta] = None,
) -> str:
    """
    Create a refresh token bound to a persisted session

    Args:
        user_id: Owning user
        session_id: RefreshToken record id, carried as the jti claim
        family_id: Rotation chain identifier
        ttl: Lifetime, defaults to REFRESH_TOKEN_EXPIRE_DAYS

    Returns:
        str: Encoded JWT
    """
    ttl = ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return issue_token(
        TokenKind.REFRESH,
        {"sub": user_id, "jti": session_id, "fam": family_id},
        ttl,
    )


def create_guest_token(album_ids: Iterable[str]) -> str:
    albums: List[str] = []
    for album_id in album_ids:
        if album_id not in albums:
            albums.append(album_id)
    return issue_token(
        TokenKind.GUEST,
        {"albums": albums},
        timedelta(days=settings.GUEST_TOKEN_EXPIRE_DAYS),
    )


def decode_access_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    return verify_token(TokenKind.ACCESS, token)


def decode_refresh_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    return verify_token(TokenKind.REFRESH, token)


def decode_guest_token(token: Optional[str]) -> List[str]:
    """Return the album ids a guest token grants, or an empty list."""
    payload = verify_token(TokenKind.GUEST, token)
    if not payload:
        return []
    return list(payload["albums"])


def new_session_id() -> str:
    return str(uuid.uuid4())


def new_family_id() -> str:
    return secrets.token_urlsafe(32)
