"""
Pydantic schemas for API request/response validation
"""
from .job import (
    Provider,
    JobConfig,
    GenerateRequest,
    GenerateResponse,
    JobResponse,
    JobEnvelope,
    JobListResponse,
    JobLogResponse,
    JobLogListResponse,
    QueueStats,
    StatsResponse,
)
from .quality import (
    Defect,
    QualityReport,
    RepairAttemptRecord,
    MAX_STORED_DEFECTS,
)
from .deployment import (
    DeploymentResult,
    DeployedGame,
    GameListResponse,
    RemoveGameResponse,
)

__all__ = [
    # Job
    "Provider",
    "JobConfig",
    "GenerateRequest",
    "GenerateResponse",
    "JobResponse",
    "JobEnvelope",
    "JobListResponse",
    "JobLogResponse",
    "JobLogListResponse",
    "QueueStats",
    "StatsResponse",
    # Quality
    "Defect",
    "QualityReport",
    "RepairAttemptRecord",
    "MAX_STORED_DEFECTS",
    # Deployment
    "DeploymentResult",
    "DeployedGame",
    "GameListResponse",
    "RemoveGameResponse",
]
