"""
Repair Loop - quality gate after a successful deploy

For attempt = 1..max_attempts:
    score the deployed build
    record the attempt under phase_outputs["repair_attempt_<n>"]
    score >= pass threshold          -> passed
    last attempt and score < fail    -> remove the game, QualityGateError
    last attempt otherwise           -> accepted (build kept as-is)
    else run a phase5 repair unit; on exit 0 redeploy, then settle

Repair units and redeploys are best-effort: failures are logged and the loop
moves on to the next attempt.
"""
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from database import utcnow
from schemas.quality import QualityReport, RepairAttemptRecord, MAX_STORED_DEFECTS
from services.deployer import Deployer
from services.errors import QualityGateError
from services.executor import REPAIR_PHASE
from services.job_store import JobStore
from services.phase_runner import JobReporter, PhaseRunner
from services.quality_oracle import QualityOracle
from services.waiter import Waiter

logger = logging.getLogger(__name__)

OUTCOME_PASSED = "passed"
OUTCOME_ACCEPTED = "accepted"
OUTCOME_FAILED = "failed"


@dataclass
class RepairOutcome:
    outcome: str
    attempts: int
    final_score: float
    scores: List[float]


class RepairLoop:
    """
    Args:
        store: Job store
        runner: Phase runner used for phase5 units
        deployer: Deployer used for redeploy and removal
        oracle: Quality oracle
        max_attempts: A
        pass_threshold: P
        fail_threshold: F (must be < P)
        settle_seconds: Pause after a redeploy before re-testing
        stop_event: Shutdown signal
    """

    def __init__(
        self,
        store: JobStore,
        runner: PhaseRunner,
        deployer: Deployer,
        oracle: QualityOracle,
        max_attempts: int = 3,
        pass_threshold: float = 7.0,
        fail_threshold: float = 4.0,
        settle_seconds: float = 5,
        stop_event: Optional[threading.Event] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if fail_threshold >= pass_threshold:
            raise ValueError("fail_threshold must be lower than pass_threshold")
        self.store = store
        self.runner = runner
        self.deployer = deployer
        self.oracle = oracle
        self.max_attempts = max_attempts
        self.pass_threshold = pass_threshold
        self.fail_threshold = fail_threshold
        self.settle_seconds = settle_seconds
        self.stop_event = stop_event or threading.Event()

    def run(
        self,
        job_id: int,
        url: str,
        display_name: str,
        dist_dir: Path,
        base_env: Sequence[str] = (),
    ) -> RepairOutcome:
        """
        Raises:
            QualityGateError: final score below the fail threshold (game already removed)
            WaitCancelled: shutdown during a repair unit or settle pause
        """
        reporter = JobReporter(self.store, job_id, tag="RepairLoop")
        settle = Waiter(self.settle_seconds, stop_event=self.stop_event)
        scores: List[float] = []

        for attempt in range(1, self.max_attempts + 1):
            report = self._evaluate(url, reporter)
            scores.append(report.score)
            self._record(job_id, attempt, report)
            reporter.info(
                f"Attempt {attempt}/{self.max_attempts}: score {report.score:g}, "
                f"{len(report.defects)} defect(s)"
            )

            if report.score >= self.pass_threshold:
                return self._finish(job_id, OUTCOME_PASSED, attempt, scores, reporter)

            if attempt == self.max_attempts:
                if report.score < self.fail_threshold:
                    self._reject(job_id, reporter)
                    self._finish(job_id, OUTCOME_FAILED, attempt, scores, reporter)
                    raise QualityGateError(report.score, self.fail_threshold, attempt)
                return self._finish(job_id, OUTCOME_ACCEPTED, attempt, scores, reporter)

            if self._repair(job_id, attempt, url, report, base_env, reporter):
                self._redeploy(job_id, display_name, dist_dir, reporter)
                settle.sleep()

        # Unreachable: the last attempt always returns or raises
        raise AssertionError("repair loop exited without an outcome")

    def _evaluate(self, url: str, reporter: JobReporter) -> QualityReport:
        try:
            return self.oracle.evaluate(url)
        except Exception as e:
            reporter.warn(f"Quality oracle failed: {e}")
            return QualityReport.runner_error(str(e))

    def _record(self, job_id: int, attempt: int, report: QualityReport) -> None:
        record = RepairAttemptRecord.from_report(attempt, report, utcnow())
        self.store.update_phase_output(
            job_id, RepairAttemptRecord.output_key(attempt), record.model_dump(mode="json")
        )

    def _repair(
        self,
        job_id: int,
        attempt: int,
        url: str,
        report: QualityReport,
        base_env: Sequence[str],
        reporter: JobReporter,
    ) -> bool:
        """Run one phase5 unit; True when it exited 0"""
        defects = [d.model_dump(mode="json") for d in report.defects[:MAX_STORED_DEFECTS]]
        env = tuple(base_env) + (
            f"GAME_URL={url}",
            f"DEFECTS={json.dumps(defects)}",
            f"REPAIR_ATTEMPT={attempt}",
        )
        result = self.runner.run(job_id, REPAIR_PHASE, env, reporter)
        if not result.succeeded:
            reporter.warn(f"Repair attempt {attempt} exited with code {result.exit_code}, re-testing current build")
        return result.succeeded

    def _redeploy(self, job_id: int, display_name: str, dist_dir: Path, reporter: JobReporter) -> None:
        try:
            self.deployer.deploy(job_id, display_name, dist_dir)
            reporter.info("Redeployed repaired build")
        except Exception as e:
            reporter.warn(f"Redeploy failed: {e}")

    def _reject(self, job_id: int, reporter: JobReporter) -> None:
        """Take the build offline; each step is best-effort"""
        try:
            self.deployer.remove(job_id)
            reporter.warn("Removed game that failed the quality gate")
        except Exception as e:
            reporter.error(f"Could not remove game: {e}")
        try:
            self.deployer.refresh_listing()
        except Exception as e:
            reporter.warn(f"Listing refresh failed: {e}")

    def _finish(
        self,
        job_id: int,
        outcome: str,
        attempts: int,
        scores: List[float],
        reporter: JobReporter,
    ) -> RepairOutcome:
        result = RepairOutcome(outcome=outcome, attempts=attempts, final_score=scores[-1], scores=scores)
        self.store.update_phase_output(job_id, "repair", {
            "outcome": outcome,
            "attempts": attempts,
            "finalScore": result.final_score,
            "scores": scores,
        })
        reporter.info(f"Quality gate {outcome} after {attempts} attempt(s)")
        return result
