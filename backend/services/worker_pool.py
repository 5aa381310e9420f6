"""
Worker Pool - bounded set of pipeline threads

A slot is taken before a job is claimed and given back exactly once when the
job's thread finishes, however it finishes.
"""
import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Slot:
    """One unit of pool capacity; release() is idempotent"""

    def __init__(self, pool: "WorkerPool"):
        self._pool = pool
        self._released = False
        self._lock = threading.Lock()

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        self._pool._release()

    @property
    def released(self) -> bool:
        return self._released

    def __enter__(self) -> "Slot":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class WorkerPool:
    """
    Concurrency cap for pipeline tasks

    Usage:
        slot = pool.try_acquire()
        if slot is None:
            return                      # full
        job = store.get_next_job()
        if job is None:
            slot.release()
            return
        pool.run(slot, f"job-{job.id}", pipeline.run, job)
    """

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._active = 0
        self._lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def is_full(self) -> bool:
        with self._lock:
            return self._active >= self.max_workers

    def try_acquire(self) -> Optional[Slot]:
        with self._lock:
            if self._active >= self.max_workers:
                return None
            self._active += 1
        return Slot(self)

    def _release(self) -> None:
        with self._lock:
            self._active -= 1

    def run(self, slot: Slot, name: str, fn: Callable, *args) -> threading.Thread:
        """Run fn(*args) on its own thread; the slot is released when it returns or raises"""

        def _target():
            try:
                with slot:
                    fn(*args)
            except Exception:
                logger.exception(f"[WorkerPool] Task {name} raised")
            logger.info(f"[WorkerPool] Task {name} finished ({self.active}/{self.max_workers} active)")

        thread = threading.Thread(target=_target, name=name, daemon=True)
        try:
            thread.start()
        except Exception:
            slot.release()
            raise
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        return thread

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight tasks (used on shutdown)"""
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
