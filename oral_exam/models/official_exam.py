# oral_exam/models/official_exam.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON, ForeignKey, Index
from oral_exam.db.base import Base


class OfficialExamSession(Base):
    __tablename__ = "official_exam_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    assessment_session_id = Column(String(36), ForeignKey("speaking_assessment_sessions.id"), nullable=True)
    is_official = Column(Boolean, nullable=False, default=False)

    # scenario / persona / tier slots
    scenario_1_id = Column(String(40), nullable=False, default="pending")
    scenario_2_id = Column(String(40), nullable=False, default="pending")
    scenario_3_id = Column(String(40), nullable=False, default="pending")
    persona_1_id = Column(String(40), nullable=False, default="pending")
    persona_2_id = Column(String(40), nullable=False, default="pending")
    persona_3_id = Column(String(40), nullable=False, default="pending")
    tier_1 = Column(Integer, nullable=False, default=1)
    tier_2 = Column(Integer, nullable=False, default=1)
    tier_3 = Column(Integer, nullable=False, default=1)

    conversation_transcript = Column(JSON, nullable=False, default=list)

    fluency_score = Column(Float, nullable=True)
    syntax_score = Column(Float, nullable=True)
    conversation_score = Column(Float, nullable=True)
    confidence_score = Column(Float, nullable=True)
    overall_score = Column(Float, nullable=True)
    proficiency_level = Column(String(10), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    trace_id = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_official_exams_user_official_completed", "user_id", "is_official", "completed_at"),
    )
