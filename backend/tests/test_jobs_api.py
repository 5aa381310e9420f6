"""
Tests for the HTTP API (FastAPI TestClient, scheduler not started)
"""
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from main import create_app
from conftest import FakeDeployer, FakeExecutor, FakeOracle


@pytest.fixture
def api_deployer():
    return FakeDeployer(existing_titles=["Star Miner"])


@pytest.fixture
def app(store, api_deployer):
    return create_app(
        job_store=store,
        deployer=api_deployer,
        executor=FakeExecutor(),
        oracle=FakeOracle([9.0]),
        start_scheduler=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestGenerate:
    """Tests for POST /api/generate"""

    def test_generate_count(self, client, store):
        response = client.post("/api/generate", json={"count": 3, "options": {"model": "m1"}})

        assert response.status_code == 201
        body = response.json()
        assert body["count"] == 3
        assert len(set(body["jobIds"])) == 3
        job = store.get_job(body["jobIds"][0])
        assert job.status == "queued"
        assert job.config == {"model": "m1"}

    def test_generate_defaults_to_one(self, client):
        response = client.post("/api/generate", json={})

        assert response.status_code == 201
        assert response.json()["count"] == 1

    def test_count_parsed_from_string(self, client):
        response = client.post("/api/generate", json={"count": "2"})

        assert response.json()["count"] == 2

    def test_unknown_options_kept(self, client, store):
        response = client.post("/api/generate", json={"options": {"theme": "ocean"}})

        [job_id] = response.json()["jobIds"]
        assert store.get_job(job_id).config["theme"] == "ocean"

    def test_options_stored_as_sent(self, client, store):
        options = {"theme": None, "model": "m2", "provider": "alternate", "tags": ["a", None]}

        response = client.post("/api/generate", json={"options": options})

        [job_id] = response.json()["jobIds"]
        assert store.get_job(job_id).config == options

    def test_no_options_stores_empty_config(self, client, store):
        response = client.post("/api/generate", json={})

        [job_id] = response.json()["jobIds"]
        assert store.get_job(job_id).config == {}

    def test_compare_creates_linked_pairs(self, client, store):
        response = client.post("/api/generate", json={"count": 2, "options": {"compare": True}})

        body = response.json()
        assert body["count"] == 4
        first, second, third, fourth = [store.get_job(i) for i in body["jobIds"]]
        assert first.config == {"provider": "default"}
        assert second.config == {"provider": "alternate", "sourceJobId": first.id}
        assert fourth.config["sourceJobId"] == third.id

    def test_compare_pairs_keep_other_options(self, client, store):
        response = client.post(
            "/api/generate", json={"options": {"compare": True, "model": None, "theme": "ocean"}}
        )

        first, second = [store.get_job(i) for i in response.json()["jobIds"]]
        assert first.config == {"provider": "default", "model": None, "theme": "ocean"}
        assert second.config == {"provider": "alternate", "model": None, "theme": "ocean", "sourceJobId": first.id}

    def test_large_count_accepted(self, client):
        response = client.post("/api/generate", json={"count": 150})

        assert response.status_code == 201
        assert len(response.json()["jobIds"]) == 150

    def test_invalid_count_is_400(self, client):
        response = client.post("/api/generate", json={"count": 0})

        assert response.status_code == 400
        assert "count" in response.json()["error"]


class TestJobs:
    """Tests for job reads"""

    def test_list_jobs_newest_first(self, client, store):
        ids = store.add_job(3)
        store.update_status(ids[0], "completed")

        all_jobs = client.get("/api/jobs").json()["jobs"]
        completed = client.get("/api/jobs", params={"status": "completed"}).json()["jobs"]
        page = client.get("/api/jobs", params={"limit": 1, "offset": 1}).json()["jobs"]

        assert [j["id"] for j in all_jobs] == list(reversed(ids))
        assert [j["id"] for j in completed] == [ids[0]]
        assert [j["id"] for j in page] == [ids[1]]

    def test_unknown_status_filter_is_400(self, client):
        response = client.get("/api/jobs", params={"status": "bogus"})

        assert response.status_code == 400
        assert "bogus" in response.json()["error"]

    def test_get_job(self, client, store):
        [job_id] = store.add_job(1, {"provider": "alternate"})
        store.update_phase_output(job_id, "genreSeed", "lane-battle")

        response = client.get(f"/api/jobs/{job_id}")

        assert response.status_code == 200
        job = response.json()["job"]
        assert job["id"] == job_id
        assert job["status"] == "queued"
        assert job["config"] == {"provider": "alternate"}
        assert job["phase_outputs"] == {"genreSeed": "lane-battle"}

    def test_missing_job_is_404(self, client):
        response = client.get("/api/jobs/999")

        assert response.status_code == 404
        assert response.json() == {"error": "Job 999 not found"}

    def test_job_logs(self, client, store):
        [job_id] = store.add_job()
        store.add_log(job_id, "info", "Starting phase1")
        store.add_log(job_id, "error", "Job failed: phase1: exit code 1")

        logs = client.get(f"/api/jobs/{job_id}/logs").json()["logs"]

        assert [log["message"] for log in logs] == ["Starting phase1", "Job failed: phase1: exit code 1"]
        assert logs[1]["level"] == "error"

    def test_logs_of_missing_job_is_404(self, client):
        assert client.get("/api/jobs/999/logs").status_code == 404

    def test_stats(self, client, store):
        ids = store.add_job(3)
        store.update_status(ids[0], "phase_2")

        stats = client.get("/api/stats").json()["stats"]

        assert stats == {"queued": 2, "running": 0, "completed": 0, "failed": 0, "total": 3}


class TestGames:
    """Tests for deployed game routes"""

    def test_list_games(self, client):
        games = client.get("/api/games").json()["games"]

        assert [g["title"] for g in games] == ["Star Miner"]

    def test_remove_game_refreshes_listing(self, client, api_deployer):
        [game] = api_deployer.list_deployed()

        response = client.delete(f"/api/games/{game.gameId}")

        assert response.status_code == 200
        assert response.json() == {"gameId": game.gameId, "removed": True}
        assert api_deployer.removed == [game.gameId]
        assert api_deployer.listings[-1] == []

    def test_deployer_error_is_500(self, app, api_deployer):
        api_deployer.list_deployed = Mock(side_effect=RuntimeError("deploy dir unreadable"))

        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/games")

        assert response.status_code == 500
        assert response.json() == {"error": "deploy dir unreadable"}


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}
