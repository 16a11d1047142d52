# oral_exam/services/official_exams.py
"""
Official (cooldown-gated) exam records.

A record becomes immutable once completed_at is set.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from oral_exam.models.official_exam import OfficialExamSession
from oral_exam.services import retry_policy
from oral_exam.services.errors import CooldownActive, ExamImmutable, ExamNotFound, InvalidArgument

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "scenario_1_id", "scenario_2_id", "scenario_3_id",
    "persona_1_id", "persona_2_id", "persona_3_id",
    "tier_1", "tier_2", "tier_3",
    "conversation_transcript",
    "fluency_score", "syntax_score", "conversation_score", "confidence_score", "overall_score",
    "proficiency_level", "duration_seconds", "trace_id",
})


def get_exam(db: Session, user_id: str, exam_id: str) -> OfficialExamSession:
    exam = (
        db.query(OfficialExamSession)
        .filter(OfficialExamSession.id == exam_id, OfficialExamSession.user_id == user_id)
        .first()
    )
    if not exam:
        raise ExamNotFound(exam_id)
    return exam


def create_official_exam(
    db: Session,
    user_id: str,
    assessment_session_id: Optional[str] = None,
    is_official: bool = True,
    now: Optional[datetime] = None,
) -> OfficialExamSession:
    """
    Open a new exam record. Official attempts are refused during the cooldown.

    Raises:
        CooldownActive: an official exam was completed inside the window
    """
    if is_official:
        next_at = retry_policy.next_available_date(db, user_id, now)
        if next_at is not None:
            raise CooldownActive(next_at)

    exam = OfficialExamSession(
        user_id=user_id,
        assessment_session_id=assessment_session_id,
        is_official=is_official,
        conversation_transcript=[],
    )
    db.add(exam)
    db.flush()
    logger.info("[EXAM] created exam_id=%s user_id=%s official=%s", exam.id, user_id, is_official)
    return exam


def update_official_exam(db: Session, user_id: str, exam_id: str, updates: Dict[str, Any]) -> OfficialExamSession:
    exam = get_exam(db, user_id, exam_id)
    if exam.completed_at is not None:
        raise ExamImmutable(exam_id)

    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        raise InvalidArgument(f"not editable: {', '.join(sorted(unknown))}")

    for key, value in updates.items():
        setattr(exam, key, value)
    db.flush()
    return exam


def complete_official_exam(
    db: Session,
    user_id: str,
    exam_id: str,
    updates: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> OfficialExamSession:
    exam = update_official_exam(db, user_id, exam_id, updates or {})
    exam.completed_at = now or datetime.now(timezone.utc)
    db.flush()
    logger.info("[EXAM] completed exam_id=%s overall=%s", exam.id, exam.overall_score)
    return exam


def get_exam_history(db: Session, user_id: str) -> List[OfficialExamSession]:
    return (
        db.query(OfficialExamSession)
        .filter(OfficialExamSession.user_id == user_id, OfficialExamSession.completed_at.isnot(None))
        .order_by(OfficialExamSession.completed_at.desc())
        .all()
    )
