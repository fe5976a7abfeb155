from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from marketplace.core.config import settings


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for FastAPI's threadpool
        return {"check_same_thread": False}
    return {}


def build_engine(database_url: str):
    return create_engine(database_url, connect_args=get_connect_args(database_url))


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting DB session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_sync(factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """Get a DB session outside of request dependencies with proper resource management"""
    db = factory()
    try:
        yield db
    finally:
        db.close()
