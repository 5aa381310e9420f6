"""
Services package
Job queue, scheduling and pipeline execution
"""
from .errors import (
    PipelineError,
    InvalidStatusError,
    JobNotFoundError,
    PhaseExecutionError,
    SourceJobError,
    SourceNotFoundError,
    SourceFailedError,
    SourceTimeoutError,
    QualityGateError,
    DeploymentError,
    WaitTimeout,
    WaitCancelled,
)
from .job_store import JobStore, VALID_STATUSES
from .waiter import Waiter
from .worker_pool import WorkerPool, Slot
from .executor import ExecutionRequest, ExecutionStatus, Executor, SubprocessExecutor
from .deployer import Deployer, StaticSiteDeployer
from .quality_oracle import QualityOracle, ScriptQualityOracle
from .pipeline import PipelineOrchestrator
from .repair_loop import RepairLoop
from .scheduler import Scheduler

__all__ = [
    # Errors
    "PipelineError",
    "InvalidStatusError",
    "JobNotFoundError",
    "PhaseExecutionError",
    "SourceJobError",
    "SourceNotFoundError",
    "SourceFailedError",
    "SourceTimeoutError",
    "QualityGateError",
    "DeploymentError",
    "WaitTimeout",
    "WaitCancelled",
    # Queue
    "JobStore",
    "VALID_STATUSES",
    "Scheduler",
    "WorkerPool",
    "Slot",
    "Waiter",
    # Pipeline
    "PipelineOrchestrator",
    "RepairLoop",
    # Collaborators
    "ExecutionRequest",
    "ExecutionStatus",
    "Executor",
    "SubprocessExecutor",
    "Deployer",
    "StaticSiteDeployer",
    "QualityOracle",
    "ScriptQualityOracle",
]
