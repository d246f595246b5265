"""Error taxonomy for job orchestration."""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for orchestration failures surfaced to callers."""


class SubmissionError(OrchestratorError, ValueError):
    """Transfer request is malformed; no job was created."""


class TransferLaunchError(OrchestratorError):
    """External transfer process could not be started."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class JobNotFoundError(OrchestratorError, LookupError):
    """Job id is unknown to the registry."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobLogNotFoundError(JobNotFoundError):
    """Per-job log file does not exist."""

    def __init__(self, job_id: str, path: str) -> None:
        super().__init__(job_id)
        self.args = (f"Log file not found for job {job_id}: {path}",)
        self.path = path


class InvalidTransitionError(OrchestratorError, ValueError):
    """Job status change violates the lifecycle."""


class DuplicateJobError(OrchestratorError, ValueError):
    """Job id is already registered or was used before."""


class PresetValidationError(OrchestratorError, ValueError):
    """Saved transfer preset input is invalid."""


class PresetNotFoundError(OrchestratorError, LookupError):
    """Saved transfer preset does not exist."""
