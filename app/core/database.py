"""
Database Configuration and Session Management
Supports both SQLite (local dev) and PostgreSQL (production)
"""
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.core.config import settings

# Base class for models
Base = declarative_base()


def create_db_engine(database_url: str = None) -> Engine:
    """Engine for the codes database; DATABASE_URL unless a url is given"""
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        # Ticks write from worker threads
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every table stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def init_db(bind: Engine):
    """Create the users, checked_emails and magic_codes tables"""
    from app.models import user, checked_email, magic_code  # noqa
    Base.metadata.create_all(bind=bind)
