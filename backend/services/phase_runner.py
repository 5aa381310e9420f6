"""
Phase Runner - runs one execution unit to completion for a job

Shared by the pipeline (phases 1-4) and the repair loop (phase5):
1. Set the job's phase status and log "Starting"
2. Spawn the unit through the Executor with the phase's timeout policy
3. Poll until the unit stops running
4. Log a bounded prefix of its output

The runner never decides what a non-zero exit means; callers do.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from services.executor import ExecutionRequest, Executor, phase_status
from services.job_store import JobStore
from services.waiter import Waiter

logger = logging.getLogger(__name__)

# Characters of unit output copied into the job log
LOG_PREFIX_CHARS = 500


class JobReporter:
    """
    Job-scoped log writer

    Lines go to the job's log stream (visible through the API) and to the
    process logger. A store outage while logging is itself only logged.
    """

    def __init__(self, store: JobStore, job_id: int, tag: str = "Pipeline"):
        self.store = store
        self.job_id = job_id
        self.prefix = f"[{tag} job-{job_id}]"

    def _write(self, level: str, py_level: int, message: str) -> None:
        logger.log(py_level, f"{self.prefix} {message}")
        try:
            self.store.add_log(self.job_id, level, message)
        except Exception as e:
            logger.error(f"{self.prefix} Could not store log line: {e}")

    def info(self, message: str) -> None:
        self._write("info", logging.INFO, message)

    def warn(self, message: str) -> None:
        self._write("warn", logging.WARNING, message)

    def error(self, message: str) -> None:
        self._write("error", logging.ERROR, message)


@dataclass(frozen=True)
class PhaseResult:
    phase: str
    exit_code: Optional[int]

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class PhaseRunner:
    """
    Args:
        store: Job store
        executor: Executor collaborator
        timeouts: Phase -> timeout seconds handed to the Executor
        poll_interval: Seconds between status polls
        stop_event: Set on shutdown to abandon polling
    """

    def __init__(
        self,
        store: JobStore,
        executor: Executor,
        timeouts: Dict[str, int],
        poll_interval: float = 5,
        stop_event: Optional[threading.Event] = None,
    ):
        self.store = store
        self.executor = executor
        self.timeouts = timeouts
        self.poll_interval = poll_interval
        self.stop_event = stop_event or threading.Event()

    def start_phase(self, job_id: int, phase: str, reporter: JobReporter) -> None:
        self.store.update_status(job_id, phase_status(phase))
        reporter.info(f"Starting {phase}")

    def run(self, job_id: int, phase: str, environment: Iterable[str], reporter: JobReporter) -> PhaseResult:
        """
        Execute `phase` and wait for it

        Returns:
            PhaseResult; exit_code is None if the Executor lost track of the unit

        Raises:
            WaitCancelled: shutdown while the unit was running
        """
        self.start_phase(job_id, phase, reporter)

        request = ExecutionRequest(
            job_id=job_id,
            phase=phase,
            environment=tuple(environment),
            timeout_seconds=self.timeouts.get(phase, 3600),
        )
        execution_id = self.executor.spawn(request)
        reporter.info(f"{phase} running as {execution_id}")

        # No deadline here: the Executor enforces the phase timeout
        waiter = Waiter(self.poll_interval, stop_event=self.stop_event)
        status = waiter.poll(
            lambda: self.executor.poll_status(execution_id),
            lambda s: s is None or not s.running,
        )

        output = self.executor.fetch_logs(execution_id)
        if output:
            reporter.info(f"{phase} output: {output[:LOG_PREFIX_CHARS]}")

        exit_code = None if status is None else status.exit_code
        reporter.info(f"{phase} finished with exit code {exit_code}")
        return PhaseResult(phase=phase, exit_code=exit_code)
