"""
Job Store - Durable job queue backed by SQLAlchemy

Provides:
- add_job(): enqueue one or more jobs
- get_next_job(): atomically claim the oldest queued job (claim-once)
- update_status() / update_phase_output(): writes from the claiming worker
- get_job() / get_jobs() / get_stats(): reads for pollers
- add_log() / get_job_logs(): per-job log stream
- cleanup_old(): retention

Every method opens and closes its own session, so a single JobStore can be
shared by the scheduler thread, pipeline threads and API handlers.
"""
import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Optional, Dict, Any, List, Iterator

from sqlalchemy import func, select, update, delete
from sqlalchemy.orm import Session, sessionmaker

from database import Job, JobLog, utcnow
from services.errors import InvalidStatusError, JobNotFoundError

logger = logging.getLogger(__name__)

VALID_STATUSES = (
    "queued", "running", "phase_1", "phase_2", "phase_3",
    "phase_4", "phase_5", "completed", "failed",
)
TERMINAL_STATUSES = ("completed", "failed")
REPORTED_STATUSES = ("queued", "running", "completed", "failed")
LOG_LEVELS = ("info", "warn", "error", "debug")


class JobStore:
    """
    Job queue persisted in the jobs / job_logs tables

    Args:
        session_factory: sessionmaker producing sessions with expire_on_commit=False
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ========================================================================
    # Enqueue / claim
    # ========================================================================

    def add_job(self, count: int = 1, options: Optional[Dict[str, Any]] = None) -> List[int]:
        """
        Create `count` queued jobs sharing the same config

        Returns:
            Ids of the new jobs, in creation order
        """
        options = dict(options or {})
        with self._session() as db:
            jobs = []
            for _ in range(count):
                now = utcnow()
                job = Job(status="queued", config=dict(options), phase_outputs={},
                          created_at=now, updated_at=now)
                db.add(job)
                # Flush per row so ids follow creation order
                db.flush()
                jobs.append(job)
            db.commit()
            return [job.id for job in jobs]

    def get_next_job(self) -> Optional[Job]:
        """
        Claim the oldest queued job and mark it running

        The candidate row is selected with FOR UPDATE SKIP LOCKED, so concurrent
        claimers skip each other instead of blocking. The UPDATE is conditional
        on the row still being queued; if another claimer got there first the
        next candidate is tried. Each lost race means another caller claimed a
        row, so the loop ends once no queued row is left.
        """
        while True:
            with self._session() as db:
                candidate_id = db.execute(
                    select(Job.id)
                    .where(Job.status == "queued")
                    .order_by(Job.created_at.asc(), Job.id.asc())
                    .limit(1)
                    .with_for_update(skip_locked=True)
                ).scalar()

                if candidate_id is None:
                    db.rollback()
                    return None

                now = utcnow()
                result = db.execute(
                    update(Job)
                    .where(Job.id == candidate_id, Job.status == "queued")
                    .values(status="running", started_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    continue

                db.commit()
                return db.get(Job, candidate_id)

    # ========================================================================
    # Writes from the claiming worker
    # ========================================================================

    def update_status(self, job_id: int, status: str, data: Optional[Dict[str, Any]] = None) -> Optional[Job]:
        """
        Set a job's status

        Side effects:
        - failed + data["error"]: error is recorded
        - completed / failed: completed_at is set
        - running: started_at is (re)set

        Raises:
            InvalidStatusError: status is not one of VALID_STATUSES
        """
        if status not in VALID_STATUSES:
            raise InvalidStatusError(status, VALID_STATUSES)

        now = utcnow()
        values: Dict[str, Any] = {"status": status, "updated_at": now}
        if status == "failed" and data and data.get("error"):
            values["error"] = data["error"]
        if status in TERMINAL_STATUSES:
            values["completed_at"] = now
        if status == "running":
            values["started_at"] = now

        with self._session() as db:
            result = db.execute(
                update(Job).where(Job.id == job_id).values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount == 0:
                return None
            return db.get(Job, job_id)

    def update_phase_output(self, job_id: int, key: str, value: Any) -> Optional[Job]:
        """
        Merge {key: value} into phase_outputs

        Other keys are left untouched; an existing `key` is overwritten.
        """
        with self._session() as db:
            job = db.execute(
                select(Job).where(Job.id == job_id).with_for_update()
            ).scalar_one_or_none()
            if job is None:
                return None

            # Assign a fresh dict so the JSON column is flagged dirty
            outputs = dict(job.phase_outputs or {})
            outputs[key] = value
            job.phase_outputs = outputs
            job.updated_at = utcnow()
            db.commit()
            return job

    # ========================================================================
    # Reads
    # ========================================================================

    def get_job(self, job_id: int) -> Optional[Job]:
        with self._session() as db:
            return db.get(Job, job_id)

    def require_job(self, job_id: int) -> Job:
        """Like get_job but raises JobNotFoundError"""
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_jobs(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Job]:
        """List jobs, newest first"""
        with self._session() as db:
            query = select(Job)
            if status:
                query = query.where(Job.status == status)
            query = query.order_by(Job.created_at.desc(), Job.id.desc()).limit(limit).offset(offset)
            return list(db.execute(query).scalars().all())

    def get_stats(self) -> Dict[str, int]:
        """Counts per status; transient phase_N statuses only count towards total"""
        stats = {status: 0 for status in REPORTED_STATUSES}
        stats["total"] = 0
        with self._session() as db:
            rows = db.execute(
                select(Job.status, func.count(Job.id)).group_by(Job.status)
            ).all()
        for status, count in rows:
            if status in stats:
                stats[status] = count
            stats["total"] += count
        return stats

    # ========================================================================
    # Logs
    # ========================================================================

    def add_log(self, job_id: int, level: str, message: str) -> None:
        if level not in LOG_LEVELS:
            level = "info"
        with self._session() as db:
            db.add(JobLog(job_id=job_id, level=level, message=message, created_at=utcnow()))
            db.commit()

    def get_job_logs(self, job_id: int) -> List[JobLog]:
        """All log lines for a job, oldest first"""
        with self._session() as db:
            return list(db.execute(
                select(JobLog)
                .where(JobLog.job_id == job_id)
                .order_by(JobLog.created_at.asc(), JobLog.id.asc())
            ).scalars().all())

    # ========================================================================
    # Retention
    # ========================================================================

    def cleanup_old(self, days_old: int) -> int:
        """
        Delete jobs created more than `days_old` days ago

        Logs go first so the delete never depends on the FK cascade.

        Returns:
            Number of jobs deleted
        """
        cutoff = utcnow() - timedelta(days=days_old)
        with self._session() as db:
            old_ids = select(Job.id).where(Job.created_at < cutoff)
            db.execute(
                delete(JobLog).where(JobLog.job_id.in_(old_ids))
                .execution_options(synchronize_session=False)
            )
            result = db.execute(
                delete(Job).where(Job.created_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount


__all__ = [
    "JobStore",
    "VALID_STATUSES",
    "TERMINAL_STATUSES",
    "LOG_LEVELS",
]
