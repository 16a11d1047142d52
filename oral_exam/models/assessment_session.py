# oral_exam/models/assessment_session.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from oral_exam.db.base import Base

SESSION_STATUSES = ("created", "in_progress", "completed", "abandoned")
ACTIVE_STATUSES = ("created", "in_progress")

_ACTIVE_WHERE = text("status IN ('created', 'in_progress')")


def _now():
    return datetime.now(timezone.utc)


class AssessmentSession(Base):
    __tablename__ = "speaking_assessment_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    mode = Column(Enum("full", "single_module", name="session_mode", native_enum=False), nullable=False)
    module_type = Column(String(20), nullable=True)  # set only for single_module
    status = Column(
        Enum(*SESSION_STATUSES, name="session_status", native_enum=False),
        nullable=False,
        default="created",
    )

    # frozen at creation
    seed = Column(Integer, nullable=False)
    prompt_versions = Column(JSON, nullable=False, default=dict)  # module -> bank version
    scorer_version = Column(String(20), nullable=False)
    asr_version = Column(String(40), nullable=False)
    prompt_selection = Column(JSON, nullable=False, default=dict)  # module -> [prompt ids]

    current_module = Column(String(20), nullable=True)
    current_item_index = Column(Integer, nullable=False, default=0)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now)

    __table_args__ = (
        Index("ix_speaking_sessions_user_id_created_at", "user_id", "created_at"),
        # one non-terminal session per user
        Index(
            "uq_speaking_sessions_active_user",
            "user_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    items = relationship("AssessmentItem", back_populates="session")
