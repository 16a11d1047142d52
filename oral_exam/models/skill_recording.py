# oral_exam/models/skill_recording.py
# one row per submitted attempt; superseded rows are kept for audit
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, JSON, ForeignKey, Index, Enum
from oral_exam.db.base import Base

RECORDING_STATUSES = ("pending", "uploading", "processing", "completed", "error")


class SkillRecording(Base):
    __tablename__ = "skill_recordings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("speaking_assessment_sessions.id"), nullable=False, index=True)
    item_id = Column(String(36), ForeignKey("speaking_assessment_items.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    module_type = Column(String(20), nullable=False)
    attempt_number = Column(Integer, nullable=False, default=1)

    audio_storage_path = Column(Text, nullable=True)
    transcript = Column(Text, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    word_count = Column(Integer, nullable=True)
    score = Column(Float, nullable=True)
    result = Column(JSON, nullable=True)
    status = Column(
        Enum(*RECORDING_STATUSES, name="recording_status", native_enum=False),
        nullable=False,
        default="pending",
    )
    error_message = Column(Text, nullable=True)

    superseded = Column(Boolean, nullable=False, default=False)
    used_for_scoring = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_skill_recordings_item_id_attempt", "item_id", "attempt_number"),
    )
