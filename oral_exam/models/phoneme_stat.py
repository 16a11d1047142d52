# oral_exam/models/phoneme_stat.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint
from oral_exam.db.base import Base


class UserPhonemeStat(Base):
    __tablename__ = "user_phoneme_stats"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    phoneme = Column(String(8), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    mean_accuracy = Column(Float, nullable=False, default=0.0)  # 0-100
    confidence = Column(Float, nullable=False, default=0.0)  # 0-1, from attempts only
    last_tested_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "phoneme", name="uq_user_phoneme_stats_user_phoneme"),
    )
