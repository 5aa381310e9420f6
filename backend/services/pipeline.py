"""
Pipeline Orchestrator - drives one claimed job to a terminal status

Flow:
    phase1  (or: wait for source job and copy its phase1 artifacts)
    phase2 → phase3 → phase4
    deploy  (best-effort; failure still completes the job)
    repair loop (only after a successful deploy)
    completed | failed

Only the thread that claimed the job calls into this; the job row is never
written by anyone else while it runs.

Usage:
    pipeline = PipelineOrchestrator(store, executor, deployer, oracle)
    pipeline.run(job)
"""
import logging
import random
import threading
from typing import Dict, Optional, Tuple

from database import Job
from schemas.job import JobConfig
from services.deployer import Deployer
from services.diversity import build_diversity_env
from services.errors import (
    PipelineError,
    PhaseExecutionError,
    SourceFailedError,
    SourceNotFoundError,
    SourceTimeoutError,
    WaitTimeout,
)
from services.executor import GENERATION_PHASES, Executor
from services.job_store import JobStore
from services.phase_runner import JobReporter, PhaseRunner
from services.quality_oracle import QualityOracle
from services.repair_loop import RepairLoop
from services.waiter import Waiter
from services.workspace import JobWorkspace

logger = logging.getLogger(__name__)

# Source job statuses meaning its phase1 output is complete
SOURCE_READY_STATUSES = ("phase_2", "phase_3", "phase_4", "phase_5", "completed")


class PipelineOrchestrator:
    """
    Args:
        store: Job store
        executor: Executor collaborator
        deployer: Deployer collaborator
        oracle: Quality oracle collaborator
        workspace_root: Root of per-job workspaces (shared with the executor)
        providers: Provider name -> env vars handed to execution units
        phase_timeouts: Phase -> timeout seconds
        phase1_artifacts: Names copied from a source job in comparison mode
        execution_poll_interval / source_poll_interval / source_wait_timeout: Waiter settings
        repair: Keyword arguments for RepairLoop (max_attempts, thresholds, settle_seconds)
        genre_history_size: Recent jobs whose genre seed is avoided
        stop_event: Shutdown signal
    """

    def __init__(
        self,
        store: JobStore,
        executor: Executor,
        deployer: Deployer,
        oracle: QualityOracle,
        workspace_root,
        providers: Optional[Dict[str, Dict[str, str]]] = None,
        phase_timeouts: Optional[Dict[str, int]] = None,
        phase1_artifacts=("idea.json", "idea.md", "design"),
        execution_poll_interval: float = 5,
        source_poll_interval: float = 10,
        source_wait_timeout: float = 43200,
        repair: Optional[Dict] = None,
        genre_history_size: int = 20,
        stop_event: Optional[threading.Event] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.executor = executor
        self.deployer = deployer
        self.workspace_root = workspace_root
        self.providers = providers or {}
        self.phase1_artifacts = tuple(phase1_artifacts)
        self.source_poll_interval = source_poll_interval
        self.source_wait_timeout = source_wait_timeout
        self.genre_history_size = genre_history_size
        self.stop_event = stop_event or threading.Event()
        self.rng = rng

        self.runner = PhaseRunner(
            store,
            executor,
            phase_timeouts or {},
            poll_interval=execution_poll_interval,
            stop_event=self.stop_event,
        )
        self.repair_loop = RepairLoop(
            store,
            self.runner,
            deployer,
            oracle,
            stop_event=self.stop_event,
            **(repair or {}),
        )

    # ========================================================================
    # Entry point
    # ========================================================================

    def run(self, job: Job) -> None:
        """Run a claimed job; always leaves it completed or failed"""
        reporter = JobReporter(self.store, job.id)
        try:
            self._run(job, reporter)
        except PipelineError as e:
            self._fail(job.id, str(e), reporter)
        except Exception as e:
            logger.exception(f"[Pipeline job-{job.id}] Unexpected error")
            self._fail(job.id, f"unexpected error: {e}", reporter)

    def _fail(self, job_id: int, message: str, reporter: JobReporter) -> None:
        reporter.error(f"Job failed: {message}")
        try:
            self.store.update_status(job_id, "failed", {"error": message})
        except Exception as e:
            logger.error(f"[Pipeline job-{job_id}] Could not mark job failed: {e}")

    # ========================================================================
    # Phases
    # ========================================================================

    def _run(self, job: Job, reporter: JobReporter) -> None:
        config = JobConfig.model_validate(job.config or {})
        workspace = JobWorkspace(self.workspace_root, job.id)
        workspace.ensure()
        base_env = self.provider_env(config) + (f"GAME_NAME={job.display_name}",)

        reporter.info(f"Pipeline started (provider {config.provider.value})")

        for phase in GENERATION_PHASES:
            if phase == "phase1" and config.source_job_id is not None:
                self._reuse_source_phase1(job.id, config.source_job_id, workspace, reporter)
                continue

            env = base_env
            if phase == "phase1":
                env = env + build_diversity_env(
                    job.id, self.store, self.deployer, self.genre_history_size, self.rng
                )

            result = self.runner.run(job.id, phase, env, reporter)
            if not result.succeeded:
                raise PhaseExecutionError(phase, result.exit_code)

        deployment = self._deploy(job, workspace, reporter)
        if deployment is not None:
            self.repair_loop.run(job.id, deployment.url, job.display_name, workspace.dist_dir, base_env)

        self.store.update_status(job.id, "completed")
        reporter.info("Job completed")

    def provider_env(self, config: JobConfig) -> Tuple[str, ...]:
        """Provider settings for execution units, passed through unchanged"""
        provider = config.provider.value
        env = [f"PROVIDER={provider}"]
        for key, value in self.providers.get(provider, {}).items():
            env.append(f"{key}={value}")
        if config.model:
            env.append(f"MODEL={config.model}")
        return tuple(env)

    def _reuse_source_phase1(
        self, job_id: int, source_job_id: int, workspace: JobWorkspace, reporter: JobReporter
    ) -> None:
        """Comparison mode: wait for the source job to get past phase1, then copy its output"""
        self.runner.start_phase(job_id, "phase1", reporter)
        reporter.info(f"Waiting for source job {source_job_id} to finish phase1")

        def settled(source: Optional[Job]) -> bool:
            return source is None or source.status == "failed" or source.status in SOURCE_READY_STATUSES

        source = self.store.get_job(source_job_id)
        if not settled(source):
            waiter = Waiter(
                self.source_poll_interval,
                timeout=self.source_wait_timeout,
                stop_event=self.stop_event,
            )
            try:
                source = waiter.poll(lambda: self.store.get_job(source_job_id), settled)
            except WaitTimeout as e:
                raise SourceTimeoutError(source_job_id, e.waited_seconds) from e

        if source is None:
            raise SourceNotFoundError(source_job_id)
        if source.status == "failed":
            raise SourceFailedError(source_job_id, source.error)

        source_workspace = JobWorkspace(self.workspace_root, source_job_id)
        copied = workspace.copy_artifacts_from(source_workspace, self.phase1_artifacts)
        self.store.update_phase_output(job_id, "phase1", {"copiedFrom": source_job_id})
        reporter.info(f"Copied phase1 output from job {source_job_id}: {', '.join(copied) or 'nothing'}")

    def _deploy(self, job: Job, workspace: JobWorkspace, reporter: JobReporter):
        """Publish dist/; returns the DeploymentResult or None when publication failed"""
        try:
            deployment = self.deployer.deploy(job.id, job.display_name, workspace.dist_dir)
        except Exception as e:
            reporter.error(f"Deploy failed: {e}")
            return None

        self.store.update_phase_output(job.id, "deployment", deployment.model_dump(mode="json"))
        reporter.info(f"Deployed to {deployment.url}")

        try:
            self.deployer.refresh_listing()
        except Exception as e:
            reporter.warn(f"Listing refresh failed: {e}")
        return deployment
