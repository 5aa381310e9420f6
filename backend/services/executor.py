"""
Executor - runs one pipeline phase in an isolated execution unit

Contract used by the pipeline:
- spawn(request) -> execution id
- poll_status(execution_id) -> ExecutionStatus | None
- fetch_logs(execution_id) -> str
- cleanup_finished() -> number of units forgotten

SubprocessExecutor runs WORKER_COMMAND as a child process per phase, with the
job workspace as working directory, a memory limit and a wall-clock timeout.
"""
import logging
import os
import shlex
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from services.workspace import JobWorkspace

logger = logging.getLogger(__name__)

PHASES = ("phase1", "phase2", "phase3", "phase4", "phase5")
GENERATION_PHASES = PHASES[:4]
REPAIR_PHASE = "phase5"


def phase_status(phase: str) -> str:
    """phase3 -> phase_3 (job status while the phase runs)"""
    return f"phase_{phase.replace('phase', '')}"


@dataclass(frozen=True)
class ExecutionRequest:
    """
    Everything an execution unit needs, built fresh for each phase

    environment is a tuple of KEY=VALUE strings.
    """
    job_id: int
    phase: str
    environment: Tuple[str, ...] = field(default_factory=tuple)
    timeout_seconds: int = 3600

    def __post_init__(self):
        if self.phase not in PHASES:
            raise ValueError(f"Unknown phase: {self.phase}")

    def env_dict(self) -> Dict[str, str]:
        env = {}
        for pair in self.environment:
            key, _, value = pair.partition("=")
            env[key] = value
        return env


@dataclass(frozen=True)
class ExecutionStatus:
    running: bool
    exit_code: Optional[int] = None


class Executor(ABC):
    """Collaborator that owns execution units and their limits"""

    @abstractmethod
    def spawn(self, request: ExecutionRequest) -> str:
        ...

    @abstractmethod
    def poll_status(self, execution_id: str) -> Optional[ExecutionStatus]:
        """None means the unit is unknown (never existed or already removed)"""
        ...

    @abstractmethod
    def fetch_logs(self, execution_id: str) -> str:
        ...

    @abstractmethod
    def cleanup_finished(self) -> int:
        ...


@dataclass
class _Unit:
    process: subprocess.Popen
    started: float
    timeout: int
    log_path: Path
    log_file: object
    timed_out: bool = False
    finished_at: Optional[float] = None
    collected: bool = False

    def mark_finished(self) -> None:
        if self.finished_at is None:
            self.finished_at = time.monotonic()


class SubprocessExecutor(Executor):
    """
    Execution units as local child processes

    Args:
        command: Worker command line (shell-quoted string)
        workspace_root: Root of per-job workspaces
        memory_limit: Address-space limit in bytes
        cpu_seconds: Optional CPU-time limit
        base_env: Environment every unit inherits (defaults to PATH/HOME/LANG)
        grace_seconds: How long an uncollected finished unit is kept
        limiter: Program that applies memory/CPU limits before exec
    """

    def __init__(
        self,
        command: str,
        workspace_root: Path,
        memory_limit: Optional[int] = None,
        cpu_seconds: Optional[int] = None,
        base_env: Optional[Dict[str, str]] = None,
        grace_seconds: float = 3600,
        limiter: str = "prlimit",
    ):
        self.command: Sequence[str] = shlex.split(command)
        self.grace_seconds = grace_seconds
        self.limiter = limiter
        self.workspace_root = Path(workspace_root)
        self.memory_limit = memory_limit
        self.cpu_seconds = cpu_seconds
        self.base_env = base_env if base_env is not None else {
            k: v for k, v in os.environ.items() if k in ("PATH", "HOME", "LANG", "TZ")
        }
        self._units: Dict[str, _Unit] = {}
        self._lock = threading.Lock()

    def command_line(self) -> List[str]:
        """
        Worker argv, prefixed with prlimit when limits are configured

        Limits are applied by prlimit(1) rather than in the forked child, since
        spawn is called from many pipeline threads at once.
        """
        limits = []
        if self.memory_limit:
            limits.append(f"--as={self.memory_limit}")
        if self.cpu_seconds:
            limits.append(f"--cpu={self.cpu_seconds}")
        if not limits:
            return list(self.command)
        return [self.limiter, *limits, *self.command]

    def spawn(self, request: ExecutionRequest) -> str:
        workspace = JobWorkspace(self.workspace_root, request.job_id)
        workspace.ensure()
        workspace.logs_dir.mkdir(parents=True, exist_ok=True)

        execution_id = f"worker-{request.job_id}-{request.phase}-{int(time.time() * 1000)}"
        log_path = workspace.logs_dir / f"{execution_id}.log"

        env = dict(self.base_env)
        env.update({
            "PHASE": request.phase,
            "JOB_ID": str(request.job_id),
            "TIMEOUT_SECONDS": str(request.timeout_seconds),
            "WORKSPACE_DIR": str(workspace.path),
        })
        env.update(request.env_dict())

        log_file = open(log_path, "wb")
        try:
            process = subprocess.Popen(
                self.command_line(),
                cwd=workspace.path,
                env=env,
                stdout=log_file,
                stderr=subprocess.STDOUT,
            )
        except Exception:
            log_file.close()
            raise

        with self._lock:
            self._units[execution_id] = _Unit(
                process=process,
                started=time.monotonic(),
                timeout=request.timeout_seconds,
                log_path=log_path,
                log_file=log_file,
            )
        logger.info(f"[Executor] Spawned {execution_id} (pid {process.pid}, timeout {request.timeout_seconds}s)")
        return execution_id

    def poll_status(self, execution_id: str) -> Optional[ExecutionStatus]:
        with self._lock:
            unit = self._units.get(execution_id)
        if unit is None:
            return None

        exit_code = unit.process.poll()
        if exit_code is None and time.monotonic() - unit.started > unit.timeout:
            logger.warning(f"[Executor] {execution_id} exceeded {unit.timeout}s, killing")
            unit.timed_out = True
            unit.process.kill()
            exit_code = unit.process.wait()

        if exit_code is None:
            return ExecutionStatus(running=True)
        unit.mark_finished()
        return ExecutionStatus(running=False, exit_code=exit_code)

    def fetch_logs(self, execution_id: str) -> str:
        with self._lock:
            unit = self._units.get(execution_id)
        if unit is None or not unit.log_path.exists():
            return ""
        unit.log_file.flush()
        unit.collected = True
        text = unit.log_path.read_bytes().decode("utf-8", errors="replace")
        if unit.timed_out:
            text += f"\n[executor] killed after {unit.timeout}s timeout"
        return text

    def cleanup_finished(self) -> int:
        """
        Forget finished units and close their log files

        A unit is only dropped once its output was collected, or once it has
        been finished for longer than the grace period (nobody is polling it).
        """
        now = time.monotonic()
        finished = {}
        with self._lock:
            for eid, unit in self._units.items():
                if unit.process.poll() is None:
                    continue
                unit.mark_finished()
                if unit.collected or now - unit.finished_at > self.grace_seconds:
                    finished[eid] = unit

        removed = 0
        for execution_id, unit in finished.items():
            try:
                unit.log_file.close()
                with self._lock:
                    self._units.pop(execution_id, None)
                removed += 1
            except Exception as e:
                logger.warning(f"[Executor] Failed to clean up {execution_id}: {e}")
        return removed


__all__ = [
    "PHASES",
    "GENERATION_PHASES",
    "REPAIR_PHASE",
    "phase_status",
    "ExecutionRequest",
    "ExecutionStatus",
    "Executor",
    "SubprocessExecutor",
]
