"""API key registry - generation, lookup, revocation and rotation"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
import logging
import secrets

from sqlalchemy.orm import Session

from photoshare.config import settings
from photoshare.core.exceptions import ResourceNotFoundError
from photoshare.core.security import get_password_hash, verify_password
from photoshare.models.api_key import ApiKey, ApiKeyLog
from photoshare.models.user import User
from photoshare.services.rate_limiter import rate_limiter

logger = logging.getLogger(__name__)


class ApiKeyService:
    """Service for API key management"""

    @staticmethod
    def _new_raw_key() -> str:
        length = settings.API_KEY_SECRET_LENGTH
        return f"{settings.API_KEY_PREFIX}{secrets.token_urlsafe(length)[:length]}"

    @staticmethod
    def lookup_prefix(raw_key: str) -> str:
        return raw_key[:settings.API_KEY_LOOKUP_PREFIX_LENGTH]

    @staticmethod
    def is_api_key(value: Optional[str]) -> bool:
        return bool(value) and value.startswith(settings.API_KEY_PREFIX)

    @staticmethod
    def generate(
        db: Session,
        user_id: str,
        name: str,
        minute_limit: Optional[int] = None,
        daily_limit: Optional[int] = None,
    ) -> Tuple[str, ApiKey]:
        """
        Generate a new API key

        The raw key is returned exactly once; only its hash is stored.

        Args:
            db: Database session
            user_id: Owning user
            name: Display name
            minute_limit: Requests per minute, defaults to policy
            daily_limit: Requests per day, defaults to policy

        Returns:
            Tuple of (raw key, stored record)
        """
        raw_key = ApiKeyService._new_raw_key()
        record = ApiKey(
            user_id=user_id,
            name=name,
            prefix=ApiKeyService.lookup_prefix(raw_key),
            key_hash=get_password_hash(raw_key),
            minute_limit=minute_limit or settings.API_KEY_RATE_LIMIT_PER_MINUTE,
            daily_limit=daily_limit or settings.API_KEY_RATE_LIMIT_PER_DAY,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        logger.info(f"Generated API key {record.id} ({record.prefix}...) for user {user_id}")
        return raw_key, record

    @staticmethod
    def verify(db: Session, raw_key: Optional[str]) -> Optional[Tuple[User, ApiKey]]:
        """
        Resolve a raw API key to its owner

        Args:
            db: Database session
            raw_key: Key as presented by the client

        Returns:
            Tuple of (user, record) or None if no active key matches
        """
        if not ApiKeyService.is_api_key(raw_key):
            return None

        candidates = (
            db.query(ApiKey)
            .filter(
                ApiKey.prefix == ApiKeyService.lookup_prefix(raw_key),
                ApiKey.revoked_at.is_(None),
            )
            .all()
        )
        for candidate in candidates:
            if verify_password(raw_key, candidate.key_hash):
                candidate.last_used_at = datetime.now(timezone.utc)
                db.commit()
                db.refresh(candidate)
                user = db.get(User, candidate.user_id)
                if not user:
                    return None
                return user, candidate
        return None

    @staticmethod
    def list_active(db: Session, user_id: str) -> List[ApiKey]:
        """List a user's non-revoked keys, newest first"""
        return (
            db.query(ApiKey)
            .filter(ApiKey.user_id == user_id, ApiKey.revoked_at.is_(None))
            .order_by(ApiKey.created_at.desc())
            .all()
        )

    @staticmethod
    def count_active(db: Session, user_id: str) -> int:
        return (
            db.query(ApiKey)
            .filter(ApiKey.user_id == user_id, ApiKey.revoked_at.is_(None))
            .count()
        )

    @staticmethod
    def revoke(db: Session, key_id: str, user_id: str) -> Optional[ApiKey]:
        """
        Revoke a key owned by user_id

        Args:
            db: Database session
            key_id: API key id
            user_id: Caller, must own the key

        Returns:
            The revoked record, or None if the caller owns no such key
        """
        record = (
            db.query(ApiKey)
            .filter(ApiKey.id == key_id, ApiKey.user_id == user_id)
            .first()
        )
        if not record:
            return None

        if record.revoked_at is None:
            record.revoked_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(record)
            logger.warning(f"Revoked API key {record.id} ({record.prefix}...) for user {user_id}")
        return record

    @staticmethod
    def rotate(db: Session, key_id: str, user_id: str) -> Tuple[str, ApiKey]:
        """
        Replace a key with a fresh one carrying the same name and limits

        The new key is stored before the old one is revoked.

        Raises:
            ResourceNotFoundError: Key unknown, not owned or already revoked
        """
        old = (
            db.query(ApiKey)
            .filter(
                ApiKey.id == key_id,
                ApiKey.user_id == user_id,
                ApiKey.revoked_at.is_(None),
            )
            .first()
        )
        if not old:
            raise ResourceNotFoundError("API key")

        raw_key, record = ApiKeyService.generate(
            db,
            user_id,
            old.name,
            minute_limit=old.minute_limit,
            daily_limit=old.daily_limit,
        )
        ApiKeyService.revoke(db, old.id, user_id)

        logger.info(f"Rotated API key {old.id} -> {record.id}")
        return raw_key, record

    @staticmethod
    def log_request(
        db: Session,
        key_id: str,
        endpoint: str,
        method: str,
        status_code: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ApiKeyLog:
        """Record one API key request, rejected ones included"""
        entry = ApiKeyLog(
            key_id=key_id,
            endpoint=endpoint[:255],
            method=method,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            status_code=status_code,
        )
        db.add(entry)
        db.commit()
        return entry

    @staticmethod
    def usage_stats(
        db: Session,
        key_ids: List[str],
        now: Optional[datetime] = None,
    ) -> Dict[str, Dict[str, int]]:
        """Current minute and day request counts per key"""
        stats = {}
        for key_id in key_ids:
            minute_usage, daily_usage = rate_limiter.usage(db, key_id, now=now)
            stats[key_id] = {"minute_usage": minute_usage, "daily_usage": daily_usage}
        return stats


# Singleton instance
api_key_service = ApiKeyService()
