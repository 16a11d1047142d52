# oral_exam/models/module_progress.py
import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from oral_exam.db.base import Base


class ModuleProgress(Base):
    __tablename__ = "module_progress"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("speaking_assessment_sessions.id"), nullable=False, index=True)
    module_type = Column(String(20), nullable=False)
    attempt_number = Column(Integer, nullable=False, default=1)  # bumped on module redo
    locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("session_id", "module_type", name="uq_module_progress_session_module"),
    )
