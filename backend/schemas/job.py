"""
Job-related Pydantic schemas
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Model provider an execution unit talks to"""
    DEFAULT = "default"
    ALTERNATE = "alternate"


class JobConfig(BaseModel):
    """
    Options stored in jobs.config

    Known fields are typed; anything else a client sends is kept as-is.
    """
    provider: Provider = Provider.DEFAULT
    source_job_id: Optional[int] = Field(None, alias="sourceJobId")
    model: Optional[str] = None
    compare: Optional[bool] = None

    class Config:
        populate_by_name = True
        extra = "allow"
        protected_namespaces = ()

    def to_storage(self) -> Dict[str, Any]:
        """Serialize the way it is persisted: only what the client sent, camelCase"""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class GenerateRequest(BaseModel):
    """Request body for POST /api/generate"""
    count: int = Field(1, ge=1)
    options: JobConfig = Field(default_factory=JobConfig)


class GenerateResponse(BaseModel):
    """Response schema for POST /api/generate"""
    jobIds: List[int]
    count: int


class JobResponse(BaseModel):
    """Response schema for a single job"""
    id: int
    status: str  # queued, running, phase_1..phase_5, completed, failed
    game_name: Optional[str] = None

    phase_outputs: Dict[str, Any] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobEnvelope(BaseModel):
    """Response schema for GET /api/jobs/{id}"""
    job: JobResponse


class JobListResponse(BaseModel):
    """Response schema for job list"""
    jobs: List[JobResponse]


class JobLogResponse(BaseModel):
    """Response schema for a job log line"""
    id: int
    job_id: int
    level: str  # info, warn, error, debug
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class JobLogListResponse(BaseModel):
    """Response schema for job logs (oldest first)"""
    logs: List[JobLogResponse]


class QueueStats(BaseModel):
    """Job counts by status; phase_N jobs only count towards total"""
    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


class StatsResponse(BaseModel):
    stats: QueueStats
