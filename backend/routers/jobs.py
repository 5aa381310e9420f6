"""
Jobs router
FastAPI routes for game generation jobs and deployed games
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from schemas.job import (
    GenerateRequest,
    GenerateResponse,
    JobConfig,
    JobEnvelope,
    JobListResponse,
    JobLogListResponse,
    JobLogResponse,
    JobResponse,
    Provider,
    StatsResponse,
)
from schemas.deployment import GameListResponse, RemoveGameResponse
from services.deployer import Deployer
from services.errors import InvalidStatusError
from services.job_store import JobStore, VALID_STATUSES

router = APIRouter(prefix="/api", tags=["jobs"])


# ============================================================================
# Dependencies
# ============================================================================
# Services live on app.state (see main.create_app); tests pass their own.


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_deployer(request: Request) -> Deployer:
    return request.app.state.deployer


def enqueue(store: JobStore, count: int, options: JobConfig) -> List[int]:
    """
    Create jobs for a generate request

    compare=true creates `count` pairs: a default-provider job and an
    alternate-provider job that reuses the first one's phase1 output.
    """
    if not options.compare:
        return store.add_job(count, options.to_storage())

    shared = options.to_storage()
    shared.pop("compare", None)
    shared.pop("sourceJobId", None)

    ids = []
    for _ in range(count):
        [primary_id] = store.add_job(1, {**shared, "provider": Provider.DEFAULT.value})
        [secondary_id] = store.add_job(
            1, {**shared, "provider": Provider.ALTERNATE.value, "sourceJobId": primary_id}
        )
        ids.extend([primary_id, secondary_id])
    return ids


# ============================================================================
# Jobs
# ============================================================================

@router.post("/generate", response_model=GenerateResponse, status_code=status.HTTP_201_CREATED)
def generate_games(
    body: GenerateRequest,
    store: JobStore = Depends(get_job_store),
):
    """
    Queue game generation jobs

    Options are stored as the job config; the scheduler picks jobs up in
    creation order.
    """
    ids = enqueue(store, body.count, body.options)
    return GenerateResponse(jobIds=ids, count=len(ids))


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: JobStore = Depends(get_job_store),
):
    """List jobs, newest first"""
    if status_filter and status_filter not in VALID_STATUSES:
        raise InvalidStatusError(status_filter, VALID_STATUSES)

    jobs = store.get_jobs(status=status_filter, limit=limit, offset=offset)
    return JobListResponse(jobs=[JobResponse.model_validate(j) for j in jobs])


@router.get("/jobs/{job_id}", response_model=JobEnvelope)
def get_job(job_id: int, store: JobStore = Depends(get_job_store)):
    job = store.require_job(job_id)
    return JobEnvelope(job=JobResponse.model_validate(job))


@router.get("/jobs/{job_id}/logs", response_model=JobLogListResponse)
def get_job_logs(job_id: int, store: JobStore = Depends(get_job_store)):
    """Log lines for a job, oldest first"""
    store.require_job(job_id)
    logs = store.get_job_logs(job_id)
    return JobLogListResponse(logs=[JobLogResponse.model_validate(log) for log in logs])


@router.get("/stats", response_model=StatsResponse)
def get_stats(store: JobStore = Depends(get_job_store)):
    return {"stats": store.get_stats()}


# ============================================================================
# Deployed games
# ============================================================================

@router.get("/games", response_model=GameListResponse)
def list_games(deployer: Deployer = Depends(get_deployer)):
    return GameListResponse(games=deployer.list_deployed())


@router.delete("/games/{game_id}", response_model=RemoveGameResponse)
def remove_game(game_id: int, deployer: Deployer = Depends(get_deployer)):
    """Take a game offline and drop it from the public listing"""
    result = deployer.remove(game_id)
    deployer.refresh_listing()
    return result
