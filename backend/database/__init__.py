"""
Database package
Exports main database interfaces for use throughout the application
"""
from .base import Base, engine, SessionLocal, get_db
from .models import Job, JobLog, utcnow

__all__ = [
    # Database core
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    # Models
    "Job",
    "JobLog",
    "utcnow",
]
