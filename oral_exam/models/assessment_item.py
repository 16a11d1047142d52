# oral_exam/models/assessment_item.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from oral_exam.db.base import Base

ITEM_STATUSES = ("not_started", "recording", "processing", "completed", "error")


def _now():
    return datetime.now(timezone.utc)


class AssessmentItem(Base):
    __tablename__ = "speaking_assessment_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("speaking_assessment_sessions.id"), nullable=False, index=True)
    module_type = Column(String(20), nullable=False)
    item_index = Column(Integer, nullable=False)
    prompt_id = Column(String(40), nullable=False)
    prompt_payload = Column(JSON, nullable=False)  # snapshot, not a live reference
    status = Column(
        Enum(*ITEM_STATUSES, name="item_status", native_enum=False),
        nullable=False,
        default="not_started",
    )
    attempt_number = Column(Integer, nullable=False, default=1)
    result_ref = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("session_id", "module_type", "item_index", name="uq_speaking_items_position"),
    )

    session = relationship("AssessmentSession", back_populates="items")
