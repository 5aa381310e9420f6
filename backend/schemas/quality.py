"""
Quality oracle and repair loop schemas

Oracle output is decoded once into QualityReport; everything downstream relies
on its fields being present.
"""
from datetime import datetime
from typing import List, Dict, Any

from pydantic import BaseModel, Field, field_validator

# Defects kept per stored repair attempt
MAX_STORED_DEFECTS = 20


class Defect(BaseModel):
    """A single problem reported by the quality oracle"""
    severity: str = "minor"  # critical, major, minor
    description: str = ""

    class Config:
        extra = "allow"


class QualityReport(BaseModel):
    """Result of evaluating a deployed build"""
    score: float = 0.0
    defects: List[Defect] = Field(default_factory=list)
    checks: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("score", mode="before")
    @classmethod
    def _score_or_zero(cls, v):
        return 0.0 if v is None else v

    @field_validator("defects", mode="before")
    @classmethod
    def _coerce_defects(cls, v):
        if v is None:
            return []
        # Some test scripts report bare strings
        return [{"description": d} if isinstance(d, str) else d for d in v]

    @field_validator("checks", mode="before")
    @classmethod
    def _checks_or_empty(cls, v):
        return v or {}

    @classmethod
    def runner_error(cls, message: str) -> "QualityReport":
        """Report used when the oracle itself could not run"""
        return cls(
            score=0,
            defects=[Defect(severity="critical", description=f"Test runner error: {message}")],
            checks={},
        )


class RepairAttemptRecord(BaseModel):
    """One repair loop attempt, stored under phase_outputs['repair_attempt_<n>']"""
    attempt: int
    score: float
    defectCount: int
    defects: List[Defect] = Field(default_factory=list)
    checks: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    @classmethod
    def from_report(cls, attempt: int, report: QualityReport, timestamp: datetime) -> "RepairAttemptRecord":
        return cls(
            attempt=attempt,
            score=report.score,
            defectCount=len(report.defects),
            defects=report.defects[:MAX_STORED_DEFECTS],
            checks=report.checks,
            timestamp=timestamp,
        )

    @staticmethod
    def output_key(attempt: int) -> str:
        return f"repair_attempt_{attempt}"
