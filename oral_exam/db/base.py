# oral_exam/db/base.py
# models import Base from here; engine and SessionLocal are built in db/session.py
from oral_exam.db.session import engine, SessionLocal, Base

__all__ = ["engine", "SessionLocal", "Base"]
