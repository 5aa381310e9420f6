"""
Shared fixtures: SQLite-backed job store and in-memory collaborators
"""
import os
import sys
import threading
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from database import Base
from schemas.deployment import DeploymentResult, DeployedGame, RemoveGameResponse
from schemas.quality import QualityReport
from services.deployer import Deployer
from services.errors import DeploymentError
from services.executor import ExecutionRequest, ExecutionStatus, Executor
from services.job_store import JobStore
from services.pipeline import PipelineOrchestrator
from services.quality_oracle import QualityOracle


# ============================================================================
# Fakes
# ============================================================================

class FakeExecutor(Executor):
    """
    Units finish on the first poll

    exit_codes maps phase -> list of exit codes consumed in order (default 0).
    """

    def __init__(self, exit_codes: Optional[Dict[str, List[Optional[int]]]] = None):
        self.exit_codes = {k: list(v) for k, v in (exit_codes or {}).items()}
        self.requests: List[ExecutionRequest] = []
        self.cleaned = 0
        self._results: Dict[str, Optional[int]] = {}
        self._lock = threading.Lock()

    @property
    def phases(self) -> List[str]:
        return [r.phase for r in self.requests]

    def spawn(self, request: ExecutionRequest) -> str:
        with self._lock:
            self.requests.append(request)
            execution_id = f"fake-{request.job_id}-{request.phase}-{len(self.requests)}"
            codes = self.exit_codes.get(request.phase)
            self._results[execution_id] = codes.pop(0) if codes else 0
        return execution_id

    def poll_status(self, execution_id: str) -> Optional[ExecutionStatus]:
        exit_code = self._results.get(execution_id)
        if exit_code is None:
            # Executor lost the unit
            return None
        return ExecutionStatus(running=False, exit_code=exit_code)

    def fetch_logs(self, execution_id: str) -> str:
        return f"output of {execution_id}"

    def cleanup_finished(self) -> int:
        self.cleaned += 1
        return 0


class FakeDeployer(Deployer):
    def __init__(self, fail_deploy: bool = False, existing_titles: Optional[List[str]] = None):
        self.fail_deploy = fail_deploy
        self.deploys: List[tuple] = []
        self.removed: List[int] = []
        self.listings: List[List[DeployedGame]] = []
        self.games: Dict[int, DeployedGame] = {}
        for i, title in enumerate(existing_titles or [], start=1000):
            self.games[i] = DeployedGame(gameId=i, name=f"game-{i}", title=title, url=f"https://game-{i}.test")

    def deploy(self, job_id, display_name, source_dir) -> DeploymentResult:
        self.deploys.append((job_id, display_name, source_dir))
        if self.fail_deploy:
            raise DeploymentError("disk full")
        url = f"https://game-{job_id}.test"
        self.games[job_id] = DeployedGame(gameId=job_id, name=f"game-{job_id}", title=display_name, url=url)
        return DeploymentResult(gameId=job_id, url=url, deployPath=f"/deploy/game-{job_id}")

    def list_deployed(self) -> List[DeployedGame]:
        return sorted(self.games.values(), key=lambda g: g.gameId)

    def remove(self, job_id) -> RemoveGameResponse:
        self.removed.append(job_id)
        self.games.pop(job_id, None)
        return RemoveGameResponse(gameId=job_id, removed=True)

    def publish_listing(self, games) -> None:
        self.listings.append(list(games))


class FakeOracle(QualityOracle):
    """Returns the given scores in order; the last one repeats"""

    def __init__(self, scores: List[float], defects_per_report: int = 1):
        self.scores = list(scores)
        self.defects_per_report = defects_per_report
        self.urls: List[str] = []

    def evaluate(self, url: str) -> QualityReport:
        self.urls.append(url)
        score = self.scores.pop(0) if len(self.scores) > 1 else self.scores[0]
        return QualityReport(
            score=score,
            defects=[{"severity": "major", "description": f"defect {i}"} for i in range(self.defects_per_report)],
            checks={"loads": True},
        )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so every thread sees the same database"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def deployer():
    return FakeDeployer()


@pytest.fixture
def oracle():
    return FakeOracle([9.0])


@pytest.fixture
def workspace_root(tmp_path):
    return tmp_path / "workspaces"


@pytest.fixture
def make_pipeline(store, workspace_root):
    """Pipeline with zero poll intervals and fast source waits"""

    def _make(executor, deployer, oracle, **overrides):
        kwargs = dict(
            workspace_root=workspace_root,
            providers={"default": {"API_KEY": "k1", "BASE_URL": "https://one.test"},
                       "alternate": {"API_KEY": "k2", "BASE_URL": "https://two.test"}},
            phase_timeouts={"phase1": 100, "phase2": 100, "phase3": 100, "phase4": 100, "phase5": 10},
            execution_poll_interval=0,
            source_poll_interval=0.01,
            source_wait_timeout=0.2,
            repair={"max_attempts": 3, "pass_threshold": 7.0, "fail_threshold": 4.0, "settle_seconds": 0},
        )
        kwargs.update(overrides)
        return PipelineOrchestrator(store, executor, deployer, oracle, **kwargs)

    return _make


@pytest.fixture
def claim(store):
    """Queue one job with the given config and claim it"""

    def _claim(options=None):
        store.add_job(1, options or {})
        job = store.get_next_job()
        assert job is not None
        return job

    return _claim
