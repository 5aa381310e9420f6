"""
Database models (SQLAlchemy ORM models)

Defines the job queue tables:
- Job: One game generation request moving through the pipeline phases
- JobLog: Append-only log lines emitted while a job runs
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Index, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from .base import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow():
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


class Job(Base):
    """
    Job model - one "generate a game" request

    Status lifecycle:
    queued → running → phase_1 … phase_5 → completed | failed

    Only the worker that claimed the job (see JobStore.get_next_job) writes to it.
    """
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(String(20), nullable=False, default="queued", index=True)
    game_name = Column(String(255), nullable=True)

    # Phase key → arbitrary output; keys are merged, never removed
    phase_outputs = Column(JSONType, nullable=False, default=dict)
    # Client options: provider, sourceJobId, model, compare
    config = Column(JSONType, nullable=False, default=dict)

    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    logs = relationship(
        "JobLog",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="JobLog.created_at",
    )

    @property
    def display_name(self) -> str:
        return self.game_name or f"Game {self.id}"

    def __repr__(self):
        return f"<Job(id={self.id}, status='{self.status}')>"


class JobLog(Base):
    """
    JobLog model - log lines for a job

    Levels: info, warn, error, debug
    """
    __tablename__ = "job_logs"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)

    level = Column(String(10), nullable=False, default="info")
    message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    job = relationship("Job", back_populates="logs")

    # Index for efficient log retrieval
    __table_args__ = (
        Index('ix_job_logs_job_id_created_at', 'job_id', 'created_at'),
    )

    def __repr__(self):
        return f"<JobLog(id={self.id}, job_id={self.job_id}, level='{self.level}')>"
