"""
Pipeline errors

Only PhaseExecutionError, SourceJobError and QualityGateError change a job's
status; everything else is logged where it happens.
"""


class PipelineError(Exception):
    """Base class for job pipeline failures"""
    pass


class InvalidStatusError(PipelineError, ValueError):
    """Raised when a status outside VALID_STATUSES is written"""

    def __init__(self, status, valid_statuses):
        self.status = status
        self.valid_statuses = list(valid_statuses)
        super().__init__(
            f'Invalid status: "{status}". Valid: {", ".join(self.valid_statuses)}'
        )


class JobNotFoundError(PipelineError, LookupError):
    """Raised when a job id does not exist"""

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class PhaseExecutionError(PipelineError):
    """Execution unit for a phase exited non-zero (or vanished)"""

    def __init__(self, phase: str, exit_code):
        self.phase = phase
        self.exit_code = exit_code
        super().__init__(f"{phase}: exit code {exit_code}")


class SourceJobError(PipelineError):
    """Comparison job could not reuse its source job's phase1 output"""

    def __init__(self, source_job_id, message: str):
        self.source_job_id = source_job_id
        super().__init__(message)


class SourceNotFoundError(SourceJobError):
    def __init__(self, source_job_id):
        super().__init__(source_job_id, f"phase1: source job {source_job_id} not found")


class SourceFailedError(SourceJobError):
    def __init__(self, source_job_id, source_error=None):
        detail = f" ({source_error})" if source_error else ""
        super().__init__(source_job_id, f"phase1: source job {source_job_id} failed{detail}")


class SourceTimeoutError(SourceJobError):
    def __init__(self, source_job_id, waited_seconds: float):
        super().__init__(
            source_job_id,
            f"phase1: timed out after {waited_seconds:.0f}s waiting for source job {source_job_id}"
        )


class QualityGateError(PipelineError):
    """Final repair attempt scored below the fail threshold"""

    def __init__(self, score: float, fail_threshold: float, attempts: int):
        self.score = score
        self.fail_threshold = fail_threshold
        self.attempts = attempts
        super().__init__(
            f"quality gate: score {score:g} below fail threshold {fail_threshold:g} "
            f"after {attempts} attempt(s)"
        )


class DeploymentError(PipelineError):
    """Raised by a deployer when publishing or removing a build fails"""
    pass


class WaitTimeout(PipelineError):
    """A Waiter deadline elapsed before the condition held"""

    def __init__(self, waited_seconds: float):
        self.waited_seconds = waited_seconds
        super().__init__(f"wait timed out after {waited_seconds:.1f}s")


class WaitCancelled(PipelineError):
    """A Waiter was interrupted by its stop event (shutdown)"""

    def __init__(self):
        super().__init__("wait cancelled by shutdown")


__all__ = [
    "PipelineError",
    "InvalidStatusError",
    "JobNotFoundError",
    "PhaseExecutionError",
    "SourceJobError",
    "SourceNotFoundError",
    "SourceFailedError",
    "SourceTimeoutError",
    "QualityGateError",
    "DeploymentError",
    "WaitTimeout",
    "WaitCancelled",
]
