"""
Scheduler - tick loop that feeds claimed jobs into the worker pool

Each tick:
    no free slot      -> nothing
    no queued job     -> give the slot back
    otherwise         -> run the pipeline for the job on the slot's thread

At most one job starts per tick. Housekeeping (retention + executor cleanup)
runs from the same thread every `housekeeping_interval` seconds.
"""
import logging
import threading
import time
from typing import Callable, Optional

from database import Job
from services.job_store import JobStore
from services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Args:
        store: Job store to claim from
        pool: Worker pool bounding concurrent pipelines
        run_job: Called with the claimed Job on a pool thread
        tick_interval: Seconds between ticks
        housekeeping: Optional callable run every housekeeping_interval seconds
        housekeeping_interval: Seconds between housekeeping runs
        stop_event: Shared shutdown signal
    """

    def __init__(
        self,
        store: JobStore,
        pool: WorkerPool,
        run_job: Callable[[Job], None],
        tick_interval: float = 5,
        housekeeping: Optional[Callable[[], None]] = None,
        housekeeping_interval: float = 3600,
        stop_event: Optional[threading.Event] = None,
    ):
        self.store = store
        self.pool = pool
        self.run_job = run_job
        self.tick_interval = tick_interval
        self.housekeeping = housekeeping
        self.housekeeping_interval = housekeeping_interval
        self.stop_event = stop_event or threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_housekeeping = time.monotonic()

    def tick(self) -> Optional[Job]:
        """
        One scheduling step

        Returns:
            The job started this tick, if any
        """
        slot = self.pool.try_acquire()
        if slot is None:
            return None

        try:
            job = self.store.get_next_job()
        except Exception:
            slot.release()
            raise

        if job is None:
            slot.release()
            return None

        logger.info(f"[Scheduler] Starting job {job.id} ({self.pool.active}/{self.pool.max_workers} active)")
        try:
            self.pool.run(slot, f"job-{job.id}", self.run_job, job)
        except Exception as e:
            # pool.run has already given the slot back
            logger.error(f"[Scheduler] Could not start job {job.id}: {e}")
            try:
                self.store.update_status(job.id, "failed", {"error": f"could not start pipeline: {e}"})
            except Exception as db_error:
                logger.error(f"[Scheduler] Could not mark job {job.id} failed: {db_error}")
            return None
        return job

    def run_housekeeping_if_due(self) -> bool:
        if self.housekeeping is None:
            return False
        now = time.monotonic()
        if now - self._last_housekeeping < self.housekeeping_interval:
            return False
        self._last_housekeeping = now
        try:
            self.housekeeping()
        except Exception as e:
            logger.error(f"[Scheduler] Housekeeping failed: {e}")
        return True

    def _loop(self) -> None:
        logger.info(f"[Scheduler] Started (max {self.pool.max_workers} concurrent, tick {self.tick_interval}s)")
        while not self.stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                # Store outage: try again next tick
                logger.error(f"[Scheduler] Tick failed: {e}")
            self.run_housekeeping_if_due()
            self.stop_event.wait(self.tick_interval)
        logger.info("[Scheduler] Stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._loop, name="scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop ticking, cancel waits in running pipelines and join their threads"""
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self.pool.join(timeout)


def make_housekeeping(store: JobStore, executor, retention_days: int) -> Callable[[], None]:
    """Retention and executor cleanup; each part logged and never fatal"""

    def housekeeping() -> None:
        try:
            deleted = store.cleanup_old(retention_days)
            if deleted:
                logger.info(f"[Housekeeping] Deleted {deleted} job(s) older than {retention_days} days")
        except Exception as e:
            logger.error(f"[Housekeeping] Job retention failed: {e}")
        try:
            removed = executor.cleanup_finished()
            if removed:
                logger.info(f"[Housekeeping] Cleaned up {removed} finished execution unit(s)")
        except Exception as e:
            logger.error(f"[Housekeeping] Executor cleanup failed: {e}")

    return housekeeping
