"""Fixed-window API key rate limiting backed by the database."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from photoshare.models.security import RateLimitCounter

logger = logging.getLogger(__name__)


class RateLimitOutcome(str, Enum):
    ALLOWED = "allowed"
    MINUTE_EXCEEDED = "minute"
    DAILY_EXCEEDED = "daily"


@dataclass(frozen=True)
class RateLimitDecision:
    outcome: RateLimitOutcome
    minute_count: int
    daily_count: int
    retry_after_seconds: int = 0

    @property
    def allowed(self) -> bool:
        return self.outcome is RateLimitOutcome.ALLOWED


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minute_window(now: datetime) -> datetime:
    return _utc(now).replace(second=0, microsecond=0)


def day_window(now: datetime) -> datetime:
    return _utc(now).replace(hour=0, minute=0, second=0, microsecond=0)


def _seconds_until(boundary: datetime, now: datetime) -> int:
    return max(1, math.ceil((boundary - _utc(now)).total_seconds()))


class RateLimiter:
    """
    Two nested fixed windows per API key.

    Every request is charged against the current minute row with a single
    upsert. The daily figure is the sum of that day's minute rows, so there
    is no second counter to keep in step.
    """

    @staticmethod
    def _upsert(db: Session):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise RuntimeError(f"Rate limiting is not supported on dialect '{dialect}'")

    @staticmethod
    def _increment(db: Session, key_id: str, window_start: datetime) -> int:
        insert = RateLimiter._upsert(db)
        stmt = (
            insert(RateLimitCounter)
            .values(key_id=key_id, window_start=window_start, request_count=1)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RateLimitCounter.key_id, RateLimitCounter.window_start],
            set_={"request_count": RateLimitCounter.request_count + 1},
        ).returning(RateLimitCounter.request_count)
        count = db.execute(stmt).scalar_one()
        db.commit()
        return int(count)

    @staticmethod
    def _daily_total(db: Session, key_id: str, now: datetime) -> int:
        start = day_window(now)
        total = (
            db.query(func.coalesce(func.sum(RateLimitCounter.request_count), 0))
            .filter(
                RateLimitCounter.key_id == key_id,
                RateLimitCounter.window_start >= start,
                RateLimitCounter.window_start < start + timedelta(days=1),
            )
            .scalar()
        )
        return int(total or 0)

    @staticmethod
    def check_and_increment(
        db: Session,
        key_id: str,
        minute_limit: int,
        daily_limit: int,
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        """
        Charge one request to a key and decide whether it may proceed

        Args:
            db: Database session
            key_id: API key id
            minute_limit: Requests allowed per UTC minute
            daily_limit: Requests allowed per UTC day
            now: Clock override

        Returns:
            RateLimitDecision: Outcome with the counts observed
        """
        now = _utc(now or datetime.now(timezone.utc))
        window_start = minute_window(now)

        minute_count = RateLimiter._increment(db, key_id, window_start)
        daily_count = RateLimiter._daily_total(db, key_id, now)

        if minute_count > minute_limit:
            logger.warning(
                f"API key {key_id} exceeded minute limit ({minute_count}/{minute_limit})"
            )
            return RateLimitDecision(
                outcome=RateLimitOutcome.MINUTE_EXCEEDED,
                minute_count=minute_count,
                daily_count=daily_count,
                retry_after_seconds=_seconds_until(window_start + timedelta(minutes=1), now),
            )

        if daily_count > daily_limit:
            logger.warning(
                f"API key {key_id} exceeded daily limit ({daily_count}/{daily_limit})"
            )
            return RateLimitDecision(
                outcome=RateLimitOutcome.DAILY_EXCEEDED,
                minute_count=minute_count,
                daily_count=daily_count,
                retry_after_seconds=_seconds_until(day_window(now) + timedelta(days=1), now),
            )

        return RateLimitDecision(
            outcome=RateLimitOutcome.ALLOWED,
            minute_count=minute_count,
            daily_count=daily_count,
        )

    @staticmethod
    def usage(db: Session, key_id: str, now: Optional[datetime] = None) -> Tuple[int, int]:
        """Return (current minute count, current day count) without charging."""
        now = _utc(now or datetime.now(timezone.utc))
        minute_count = (
            db.query(RateLimitCounter.request_count)
            .filter(
                RateLimitCounter.key_id == key_id,
                RateLimitCounter.window_start == minute_window(now),
            )
            .scalar()
        )
        return int(minute_count or 0), RateLimiter._daily_total(db, key_id, now)


rate_limiter = RateLimiter()
