"""Domain models for transfer jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Any

from rclone_jobs.orchestrator.errors import InvalidTransitionError


class JobStatus(str, Enum):
    """Transfer job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.ERROR, JobStatus.CANCELED},
)

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.ERROR, JobStatus.CANCELED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.ERROR, JobStatus.CANCELED},
    ),
}


class DeleteOutcome(str, Enum):
    """Result of a job deletion request."""

    DELETED = "deleted"
    NOT_TERMINAL = "not_terminal"
    NOT_FOUND = "not_found"


class CancelOutcome(str, Enum):
    """Result of a job cancellation request."""

    CANCEL_REQUESTED = "cancel_requested"
    ALREADY_TERMINAL = "already_terminal"
    NOT_FOUND = "not_found"


@dataclass(slots=True, frozen=True)
class TransferRequest:
    """Input payload for one rclone copy job."""

    source_path: str
    remote_name: str
    remote_path: str
    chunk_size: str | None = None

    @property
    def remote_target(self) -> str:
        return f"{self.remote_name}:{self.remote_path}"

    @property
    def source_label(self) -> str:
        """Last path component of the source, for display."""

        stripped = self.source_path.rstrip("/\\")
        name = PurePath(stripped).name if stripped else ""
        return name or self.source_path


@dataclass(slots=True)
class TransferJob:
    """Readable job state kept by the registry."""

    job_id: str
    status: JobStatus
    source_label: str
    remote_target: str
    log_path: str
    start_time: datetime
    progress_percent: float = 0.0
    bytes_transferred: int = 0
    bytes_total: int = 0
    end_time: datetime | None = None
    exit_code: int | None = None
    error_detail: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition_to(
        self,
        status: JobStatus,
        *,
        at: datetime | None = None,
        error_detail: str | None = None,
    ) -> None:
        """Move to ``status`` or raise when the lifecycle forbids it."""

        allowed = _ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise InvalidTransitionError(
                f"Job {self.job_id}: transition {self.status.value} -> {status.value} "
                "is not allowed.",
            )
        self.status = status
        if status == JobStatus.ERROR:
            self.error_detail = error_detail
        if status.is_terminal:
            self.end_time = at

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""

        return {
            "id": self.job_id,
            "status": self.status.value,
            "error": self.error_detail,
            "exit_code": self.exit_code,
            "progress": self.progress_percent,
            "transferred": self.bytes_transferred,
            "total": self.bytes_total,
            "source_name": self.source_label,
            "remote_target": self.remote_target,
            "log_path": self.log_path,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time is not None else None,
        }
