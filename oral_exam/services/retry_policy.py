# oral_exam/services/retry_policy.py
"""
Cooldown between official exams.

Eligibility is always derived from the most recent completed official exam;
nothing like a "next eligible" flag is ever stored.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from oral_exam.config import settings
from oral_exam.models.official_exam import OfficialExamSession

logger = logging.getLogger(__name__)


@dataclass
class RetryStatus:
    can_take_official: bool
    next_available_at: Optional[datetime]
    last_official_exam_at: Optional[datetime]
    days_until_next: int
    total_official_exams: int


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _cooldown(cooldown_days: Optional[int]) -> timedelta:
    return timedelta(days=settings.official_cooldown_days if cooldown_days is None else cooldown_days)


# ------------------------
# pure policy
# ------------------------
def is_eligible(last_official_at: Optional[datetime], now: datetime, cooldown_days: Optional[int] = None) -> bool:
    if last_official_at is None:
        return True
    return as_utc(now) >= as_utc(last_official_at) + _cooldown(cooldown_days)


def next_date_after(last_official_at: Optional[datetime], now: datetime,
                    cooldown_days: Optional[int] = None) -> Optional[datetime]:
    """None when never taken or already eligible."""
    if is_eligible(last_official_at, now, cooldown_days):
        return None
    return as_utc(last_official_at) + _cooldown(cooldown_days)


def days_until(next_available_at: Optional[datetime], now: datetime) -> int:
    if next_available_at is None:
        return 0
    remaining = (as_utc(next_available_at) - as_utc(now)).total_seconds() / 86400
    return max(0, math.ceil(remaining))


# ------------------------
# per user
# ------------------------
def _official_completed(db: Session, user_id: str):
    return db.query(OfficialExamSession).filter(
        OfficialExamSession.user_id == user_id,
        OfficialExamSession.is_official.is_(True),
        OfficialExamSession.completed_at.isnot(None),
    )


def last_official_completion(db: Session, user_id: str) -> Optional[datetime]:
    latest = _official_completed(db, user_id).with_entities(func.max(OfficialExamSession.completed_at)).scalar()
    return as_utc(latest)


def can_take_official(db: Session, user_id: str, now: Optional[datetime] = None,
                      cooldown_days: Optional[int] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return is_eligible(last_official_completion(db, user_id), now, cooldown_days)


def next_available_date(db: Session, user_id: str, now: Optional[datetime] = None,
                        cooldown_days: Optional[int] = None) -> Optional[datetime]:
    now = now or datetime.now(timezone.utc)
    return next_date_after(last_official_completion(db, user_id), now, cooldown_days)


def days_until_next(db: Session, user_id: str, now: Optional[datetime] = None,
                    cooldown_days: Optional[int] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return days_until(next_available_date(db, user_id, now, cooldown_days), now)


def get_retry_status(db: Session, user_id: str, now: Optional[datetime] = None,
                     cooldown_days: Optional[int] = None) -> RetryStatus:
    now = now or datetime.now(timezone.utc)
    last = last_official_completion(db, user_id)
    next_at = next_date_after(last, now, cooldown_days)
    total = _official_completed(db, user_id).count()

    status = RetryStatus(
        can_take_official=next_at is None,
        next_available_at=next_at,
        last_official_exam_at=last,
        days_until_next=days_until(next_at, now),
        total_official_exams=total,
    )
    logger.info(
        "[RETRY] user_id=%s can_take=%s days_until_next=%s total=%s",
        user_id, status.can_take_official, status.days_until_next, total,
    )
    return status


def format_retry_message(status: RetryStatus) -> str:
    if status.can_take_official:
        return "You can take an official assessment now"
    if status.days_until_next > 0:
        if status.days_until_next == 1:
            return "Next official assessment available tomorrow"
        return f"Next official assessment available in {status.days_until_next} days"
    if status.next_available_at:
        return f"Next official assessment: {status.next_available_at.date().isoformat()}"
    return "Checking availability..."
