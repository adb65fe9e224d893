"""
SQLAlchemy engine/session for the weather log.

Entries live in a single SQLite file (settings.sqlite_path). The parent
directory is created on first use so a fresh checkout runs without setup.
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .settings import settings


def _sqlite_url(path: str) -> str:
    if path == ":memory:":
        return "sqlite://"
    Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{Path(path).expanduser()}"


DATABASE_URL = _sqlite_url(settings.sqlite_path)

# Sync routes run in a threadpool, so one connection may cross threads.
engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    """Create the weather_entries table if it is missing."""
    from . import models  # noqa: F401  registers the mappers on Base

    Base.metadata.create_all(bind=engine)


def get_db():
    """Request-scoped session; always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
