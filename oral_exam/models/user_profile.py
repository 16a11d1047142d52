# oral_exam/models/user_profile.py
# profile row backing Supabase auth.users
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Enum
from oral_exam.db.base import Base


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True)  # = auth.users.id (uuid)
    display_name = Column(String(100))
    status = Column(
        Enum("active", "blocked", "deleted", name="user_status", native_enum=False),
        nullable=False,
        default="active",
    )
    profile_meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
