"""
Database engine, session factory and declarative base

The scheduler thread, every pipeline thread and the API handlers open their
own short-lived sessions from SessionLocal.
"""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from config import DATABASE_URL, DB_POOL_SIZE

engine = create_engine(
    DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    # One connection per in-flight job, the scheduler and the API
    pool_size=DB_POOL_SIZE,
    max_overflow=DB_POOL_SIZE,
)

# Claimed jobs outlive the session that loaded them
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session that is closed after the request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
