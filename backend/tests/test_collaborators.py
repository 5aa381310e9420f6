"""
Tests for the production collaborators and diversity seeding

- StaticSiteDeployer against a temporary deploy directory
- ScriptQualityOracle with subprocess.run mocked
- SubprocessExecutor running the current interpreter
- genre seed selection
"""
import json
import os
import random
import subprocess
import sys
import time
from unittest.mock import Mock, patch

import pytest

from services.deployer import StaticSiteDeployer
from services.diversity import GENRE_SEEDS, build_diversity_env, pick_genre_seed, recent_genre_seeds
from services.errors import DeploymentError
from services.executor import ExecutionRequest, SubprocessExecutor, phase_status
from services.quality_oracle import ScriptQualityOracle
from services.workspace import JobWorkspace
from conftest import FakeDeployer


class TestStaticSiteDeployer:
    """Tests for StaticSiteDeployer"""

    @pytest.fixture
    def site(self, tmp_path):
        return StaticSiteDeployer(tmp_path / "apps", "games.example.com", tmp_path / "gallery" / "games.json")

    @pytest.fixture
    def build(self, tmp_path):
        dist = tmp_path / "dist"
        (dist / "assets").mkdir(parents=True)
        (dist / "index.html").write_text("<html></html>")
        (dist / "assets" / "game.js").write_text("start()")
        return dist

    def test_deploy_copies_build_and_writes_meta(self, site, build, tmp_path):
        result = site.deploy(12, "Reef Runner", build)

        assert result.url == "https://game-12.games.example.com"
        html = tmp_path / "apps" / "game-12" / "html"
        assert (html / "index.html").read_text() == "<html></html>"
        assert (html / "assets" / "game.js").exists()
        meta = json.loads((tmp_path / "apps" / "game-12" / "meta.json").read_text())
        assert meta["title"] == "Reef Runner"
        assert meta["gameId"] == 12

    def test_redeploy_replaces_old_files(self, site, build, tmp_path):
        site.deploy(3, "Game 3", build)
        (build / "assets" / "game.js").unlink()

        site.deploy(3, "Game 3", build)

        assert not (tmp_path / "apps" / "game-3" / "html" / "assets" / "game.js").exists()

    def test_missing_build_raises(self, site, tmp_path):
        with pytest.raises(DeploymentError):
            site.deploy(1, "Game 1", tmp_path / "nope")

    def test_list_remove_and_publish(self, site, build, tmp_path):
        site.deploy(2, "Second", build)
        site.deploy(1, "First", build)
        (tmp_path / "apps" / "gallery-assets").mkdir()

        games = site.list_deployed()
        assert [(g.gameId, g.title) for g in games] == [(1, "First"), (2, "Second")]

        result = site.remove(1)
        assert result.removed
        assert [g.gameId for g in site.list_deployed()] == [2]

        site.refresh_listing()
        listing = json.loads((tmp_path / "gallery" / "games.json").read_text())
        assert [entry["gameId"] for entry in listing] == [2]
        assert listing[0]["url"] == "https://game-2.games.example.com"

    def test_list_without_deploy_dir(self, site):
        assert site.list_deployed() == []


class TestScriptQualityOracle:
    """Tests for ScriptQualityOracle"""

    def completed(self, stdout, returncode=0, stderr=""):
        return Mock(stdout=stdout, stderr=stderr, returncode=returncode)

    @patch("services.quality_oracle.subprocess.run")
    def test_parses_report(self, mock_run):
        mock_run.return_value = self.completed(json.dumps({
            "score": 6.5,
            "defects": [{"severity": "major", "description": "no sound"}],
            "checks": {"canvas": True},
        }))

        report = ScriptQualityOracle("node test-game.js", timeout=30).evaluate("https://game-1.test")

        assert report.score == 6.5
        assert report.defects[0].description == "no sound"
        assert report.checks == {"canvas": True}
        args, kwargs = mock_run.call_args
        assert args[0] == ["node", "test-game.js", "https://game-1.test"]
        assert kwargs["timeout"] == 30

    @patch("services.quality_oracle.subprocess.run")
    def test_report_read_on_nonzero_exit(self, mock_run):
        mock_run.return_value = self.completed(json.dumps({"score": 2, "defects": []}), returncode=1)

        report = ScriptQualityOracle("node test-game.js").evaluate("https://game-1.test")

        assert report.score == 2
        assert report.checks == {}

    @patch("services.quality_oracle.subprocess.run")
    def test_garbage_output_is_runner_error(self, mock_run):
        mock_run.return_value = self.completed("Error: Chromium failed", returncode=1, stderr="crash")

        report = ScriptQualityOracle("node test-game.js").evaluate("https://game-1.test")

        assert report.score == 0
        assert report.defects[0].severity == "critical"
        assert "Test runner error" in report.defects[0].description

    @patch("services.quality_oracle.subprocess.run")
    def test_timeout_is_runner_error(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="node", timeout=5)

        report = ScriptQualityOracle("node test-game.js", timeout=5).evaluate("https://game-1.test")

        assert report.score == 0
        assert "timed out" in report.defects[0].description

    @patch("services.quality_oracle.subprocess.run")
    def test_missing_command_is_runner_error(self, mock_run):
        mock_run.side_effect = FileNotFoundError("node")

        report = ScriptQualityOracle("node test-game.js").evaluate("https://game-1.test")

        assert report.score == 0


@pytest.mark.skipif(os.name != "posix", reason="execution units are POSIX processes")
class TestSubprocessExecutor:
    """Tests for SubprocessExecutor with the current interpreter as worker"""

    SCRIPT = (
        "import os, sys, time; "
        "print(os.environ['PHASE'], os.environ['JOB_ID'], os.environ.get('GENRE_SEED', '-')); "
        "time.sleep(float(os.environ.get('SLEEP', '0'))); "
        "sys.exit(int(os.environ.get('EXIT', '0')))"
    )

    @pytest.fixture
    def unit_executor(self, tmp_path):
        command = f'"{sys.executable}" -c "{self.SCRIPT}"'
        return SubprocessExecutor(command, tmp_path / "ws", base_env={"PATH": os.environ.get("PATH", "")})

    def wait(self, executor, execution_id):
        deadline = time.monotonic() + 30
        while time.monotonic() < deadline:
            status = executor.poll_status(execution_id)
            if not status.running:
                return status
            time.sleep(0.05)
        raise AssertionError("unit did not finish")

    def test_runs_phase_with_environment(self, unit_executor, tmp_path):
        request = ExecutionRequest(job_id=4, phase="phase1", environment=("GENRE_SEED=train-network",))

        execution_id = unit_executor.spawn(request)
        status = self.wait(unit_executor, execution_id)

        assert status.exit_code == 0
        assert unit_executor.fetch_logs(execution_id).strip() == "phase1 4 train-network"
        assert JobWorkspace(tmp_path / "ws", 4).path.is_dir()

    def test_reports_nonzero_exit(self, unit_executor):
        execution_id = unit_executor.spawn(ExecutionRequest(job_id=5, phase="phase2", environment=("EXIT=3",)))

        assert self.wait(unit_executor, execution_id).exit_code == 3

    def test_timeout_kills_unit(self, unit_executor):
        request = ExecutionRequest(job_id=6, phase="phase3", environment=("SLEEP=30",), timeout_seconds=0)

        execution_id = unit_executor.spawn(request)
        status = self.wait(unit_executor, execution_id)

        assert status.exit_code == -9
        assert "timeout" in unit_executor.fetch_logs(execution_id)

    def test_cleanup_forgets_collected_units(self, unit_executor):
        execution_id = unit_executor.spawn(ExecutionRequest(job_id=7, phase="phase4"))
        self.wait(unit_executor, execution_id)
        unit_executor.fetch_logs(execution_id)

        assert unit_executor.cleanup_finished() == 1
        assert unit_executor.poll_status(execution_id) is None

    def test_cleanup_keeps_uncollected_units(self, unit_executor):
        execution_id = unit_executor.spawn(ExecutionRequest(job_id=8, phase="phase4"))
        self.wait(unit_executor, execution_id)

        assert unit_executor.cleanup_finished() == 0
        assert unit_executor.poll_status(execution_id) is not None

    def test_unknown_unit(self, unit_executor):
        assert unit_executor.poll_status("worker-missing") is None
        assert unit_executor.fetch_logs("worker-missing") == ""

    def test_limits_applied_by_prlimit_prefix(self, tmp_path):
        executor = SubprocessExecutor("worker --fast", tmp_path, memory_limit=2048 * 1024 * 1024, cpu_seconds=600)

        assert executor.command_line() == [
            "prlimit", "--as=2147483648", "--cpu=600", "worker", "--fast",
        ]

    def test_memory_limit_only(self, tmp_path):
        executor = SubprocessExecutor("worker", tmp_path, memory_limit=1024)

        assert executor.command_line() == ["prlimit", "--as=1024", "worker"]

    def test_no_limits_runs_command_directly(self, tmp_path):
        executor = SubprocessExecutor("worker --fast", tmp_path)

        assert executor.command_line() == ["worker", "--fast"]

    def test_spawn_passes_limited_argv_without_preexec_hook(self, tmp_path):
        executor = SubprocessExecutor("worker", tmp_path, memory_limit=1024, cpu_seconds=5)

        with patch("services.executor.subprocess.Popen", return_value=Mock(pid=1)) as popen:
            executor.spawn(ExecutionRequest(job_id=9, phase="phase2"))

        args, kwargs = popen.call_args
        assert args[0] == ["prlimit", "--as=1024", "--cpu=5", "worker"]
        assert "preexec_fn" not in kwargs


class TestExecutionRequest:
    """Tests for the per-phase request value"""

    def test_unknown_phase_rejected(self):
        with pytest.raises(ValueError):
            ExecutionRequest(job_id=1, phase="phase9")

    def test_env_dict_keeps_equals_in_values(self):
        request = ExecutionRequest(job_id=1, phase="phase5", environment=("DEFECTS=[{\"a\": \"b=c\"}]",))

        assert request.env_dict() == {"DEFECTS": "[{\"a\": \"b=c\"}]"}

    def test_phase_status(self):
        assert phase_status("phase3") == "phase_3"


class TestDiversity:
    """Tests for genre seeds and phase1 hints"""

    def test_pick_avoids_recent_seeds(self):
        recent = list(GENRE_SEEDS[:-1])

        for seed in range(20):
            assert pick_genre_seed(recent, random.Random(seed)) == GENRE_SEEDS[-1]

    def test_pick_falls_back_to_full_catalog(self):
        assert pick_genre_seed(list(GENRE_SEEDS), random.Random(1)) in GENRE_SEEDS

    def test_recent_seeds_from_store(self, store):
        first, second, third = store.add_job(3)
        store.update_phase_output(first, "genreSeed", "space-combat")
        store.update_phase_output(third, "genreSeed", "train-network")

        assert recent_genre_seeds(store, 2) == ["train-network"]
        assert sorted(recent_genre_seeds(store, 10)) == ["space-combat", "train-network"]

    def test_env_records_seed(self, store):
        [job_id] = store.add_job()
        deployer = FakeDeployer(existing_titles=["Star Miner"])

        env = dict(pair.split("=", 1) for pair in build_diversity_env(job_id, store, deployer, 20))

        assert env["EXISTING_GAME_NAMES"] == "Star Miner"
        assert env["GENRE_SEED"] in GENRE_SEEDS
        assert store.get_job(job_id).phase_outputs["genreSeed"] == env["GENRE_SEED"]

    def test_deployer_failure_still_seeds(self, store):
        [job_id] = store.add_job()
        deployer = FakeDeployer()
        deployer.list_deployed = Mock(side_effect=RuntimeError("docker down"))

        env = build_diversity_env(job_id, store, deployer, 20)

        assert len(env) == 1
        assert env[0].startswith("GENRE_SEED=")
