# oral_exam/db/session.py
# SQLAlchemy setup. The URL comes from DATABASE_URL.

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from oral_exam.config import settings

DATABASE_URL = settings.database_url

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")

# Supabase hands out postgres:// URLs which SQLAlchemy no longer accepts
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)


def make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,  # detect dropped connections
        pool_size=10,
        max_overflow=0,
        pool_timeout=30,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
