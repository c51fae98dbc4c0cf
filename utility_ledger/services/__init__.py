"""Database connection and session management."""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from utility_ledger.config import settings


def build_engine(database_url: str, echo: bool = False):
    """Create an engine for the given URL.

    In-memory SQLite shares one connection (StaticPool); file-backed SQLite
    gets one connection per session so writers on different threads contend
    through SQLite's own locking.
    """
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or database_url == "sqlite://":
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 15},
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.database_url, settings.database_echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "build_engine",
    "engine",
    "SessionLocal",
    "get_db",
]
