"""
FastAPI Backend for the Game Generation Pipeline

Components:
- JobStore: durable job queue (PostgreSQL)
- Scheduler + WorkerPool: claim queued jobs, run up to MAX_CONCURRENT pipelines
- PipelineOrchestrator: phase1-4 → deploy → repair loop per job
- Executor / Deployer / QualityOracle: collaborators behind small interfaces

API Structure:
- POST /api/generate            - Queue jobs
- GET  /api/jobs[/{id}[/logs]]  - Job status and logs
- GET  /api/stats               - Queue statistics
- GET  /api/games               - Deployed games
- DELETE /api/games/{id}        - Remove a deployed game
- GET  /api/health              - Health check
"""
import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from database import SessionLocal
from routers import jobs
from services.deployer import Deployer, StaticSiteDeployer
from services.errors import InvalidStatusError, JobNotFoundError
from services.executor import Executor, SubprocessExecutor
from services.job_store import JobStore
from services.pipeline import PipelineOrchestrator
from services.quality_oracle import QualityOracle, ScriptQualityOracle
from services.scheduler import Scheduler, make_housekeeping
from services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_scheduler(
    store: JobStore,
    executor: Executor,
    deployer: Deployer,
    oracle: QualityOracle,
    stop_event: threading.Event,
) -> Scheduler:
    """Wire the pipeline and scheduler from config"""
    pipeline = PipelineOrchestrator(
        store,
        executor,
        deployer,
        oracle,
        workspace_root=config.WORKSPACE_PATH,
        providers=config.PROVIDERS,
        phase_timeouts=config.PHASE_TIMEOUTS,
        phase1_artifacts=config.PHASE1_ARTIFACTS,
        execution_poll_interval=config.EXECUTION_POLL_INTERVAL,
        source_poll_interval=config.SOURCE_POLL_INTERVAL,
        source_wait_timeout=config.SOURCE_WAIT_TIMEOUT,
        repair={
            "max_attempts": config.REPAIR_MAX_ATTEMPTS,
            "pass_threshold": config.REPAIR_PASS_THRESHOLD,
            "fail_threshold": config.REPAIR_FAIL_THRESHOLD,
            "settle_seconds": config.REPAIR_SETTLE_SECONDS,
        },
        genre_history_size=config.GENRE_HISTORY_SIZE,
        stop_event=stop_event,
    )
    return Scheduler(
        store,
        WorkerPool(config.MAX_CONCURRENT),
        pipeline.run,
        tick_interval=config.POLL_INTERVAL_MS / 1000,
        housekeeping=make_housekeeping(store, executor, config.JOB_RETENTION_DAYS),
        housekeeping_interval=config.HOUSEKEEPING_INTERVAL,
        stop_event=stop_event,
    )


def create_app(
    job_store: Optional[JobStore] = None,
    deployer: Optional[Deployer] = None,
    executor: Optional[Executor] = None,
    oracle: Optional[QualityOracle] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """
    Build the application

    Collaborators default to the production implementations configured in
    config.py. With start_scheduler=False only the HTTP API is served.
    """
    job_store = job_store or JobStore(SessionLocal)
    deployer = deployer or StaticSiteDeployer(config.DEPLOY_DIR, config.DOMAIN, config.GALLERY_DATA_PATH)
    executor = executor or SubprocessExecutor(
        config.WORKER_COMMAND,
        config.WORKSPACE_PATH,
        memory_limit=config.WORKER_MEMORY_LIMIT,
        cpu_seconds=config.WORKER_CPU_SECONDS,
        limiter=config.WORKER_LIMITER,
    )
    oracle = oracle or ScriptQualityOracle(config.QUALITY_TEST_COMMAND, config.QUALITY_TEST_TIMEOUT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if start_scheduler:
            configure_logging()
            scheduler = build_scheduler(job_store, executor, deployer, oracle, threading.Event())
            scheduler.start()
        app.state.scheduler = scheduler
        yield
        if scheduler is not None:
            logger.info("[Main] Shutting down scheduler")
            scheduler.stop(timeout=30)

    app = FastAPI(
        title="Game Generation Pipeline API",
        description="Job queue and pipeline orchestrator for generated browser games",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.job_store = job_store
    app.state.deployer = deployer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(InvalidStatusError)
    async def invalid_status_handler(request: Request, exc: InvalidStatusError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": errors})

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.exception(f"[Main] Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(jobs.router)

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    print(f"Game Generation Pipeline API on http://{config.HOST}:{config.PORT} (docs at /docs)")
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())
