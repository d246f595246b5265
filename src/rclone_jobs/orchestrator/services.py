"""Use-case facade for submitting and inspecting transfer jobs."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

from rclone_jobs.config import Settings
from rclone_jobs.orchestrator.backend import RcloneBackend, TransferBackend
from rclone_jobs.orchestrator.errors import JobLogNotFoundError, SubmissionError
from rclone_jobs.orchestrator.job_log import JobLogWriter, orphan_cutoff
from rclone_jobs.orchestrator.models import (
    CancelOutcome,
    DeleteOutcome,
    JobStatus,
    TransferJob,
    TransferRequest,
)
from rclone_jobs.orchestrator.progress import last_progress
from rclone_jobs.orchestrator.registry import JobHandle, JobRegistry, RemoveResult
from rclone_jobs.orchestrator.sources import ProgressSource, build_progress_source
from rclone_jobs.orchestrator.supervisor import JobSupervisor
from rclone_jobs.storage.common import utc_now

logger = logging.getLogger(__name__)


class TransferOrchestrator:
    """Entry point used by the CLI and the boundary API.

    Owns its registry: two orchestrators never share job state.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        log_writer: JobLogWriter,
        progress_source: ProgressSource,
        registry: JobRegistry | None = None,
        backend: TransferBackend | None = None,
        rclone_command: tuple[str, ...] = ("rclone",),
        rclone_config_path: Path = Path("data/cfg/rclone.conf"),
        terminate_grace_seconds: float = 2.0,
        cleanup_orphaned_logs: bool = False,
        orphan_log_min_age_seconds: float = 300.0,
    ) -> None:
        self.log_writer = log_writer
        self.progress_source = progress_source
        self.registry = registry or JobRegistry()
        self.backend = backend or RcloneBackend()
        self.rclone_command = rclone_command
        self.rclone_config_path = rclone_config_path
        self.terminate_grace_seconds = terminate_grace_seconds
        self.orphan_log_min_age_seconds = orphan_log_min_age_seconds
        if cleanup_orphaned_logs:
            self.cleanup_orphaned_logs()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        backend: TransferBackend | None = None,
    ) -> TransferOrchestrator:
        settings.validate()
        log_writer = JobLogWriter(settings.log_dir)
        return cls(
            log_writer=log_writer,
            progress_source=build_progress_source(
                settings.rclone.progress_channel,
                log_writer=log_writer,
                poll_interval_seconds=settings.rclone.log_tail_poll_seconds,
            ),
            backend=backend,
            rclone_command=settings.rclone.command,
            rclone_config_path=settings.rclone.config_path,
            terminate_grace_seconds=settings.rclone.terminate_grace_seconds,
            cleanup_orphaned_logs=settings.cleanup_orphaned_logs_on_start,
            orphan_log_min_age_seconds=settings.orphan_log_min_age_seconds,
        )

    def submit(self, request: TransferRequest) -> str:
        """Register a pending job, start its supervisor and return the job id.

        Only malformed requests raise; launch and runtime failures surface
        later through the job status.
        """

        _validate_request(request)
        job_id = str(uuid4())
        handle = JobHandle()
        # The log exists before the job becomes visible to queries.
        try:
            self.log_writer.create_initial(job_id, request)
        except OSError as error:
            logger.error("Failed to create initial log for %s: %s", job_id, error)

        self.registry.insert(
            TransferJob(
                job_id=job_id,
                status=JobStatus.PENDING,
                source_label=request.source_label,
                remote_target=request.remote_target,
                log_path=str(self.log_writer.path_for(job_id)),
                start_time=utc_now(),
            ),
            handle,
        )
        logger.info(
            "Submitted job %s: %s -> %s",
            job_id,
            request.source_path,
            request.remote_target,
        )

        JobSupervisor(
            job_id=job_id,
            request=request,
            registry=self.registry,
            log_writer=self.log_writer,
            backend=self.backend,
            progress_source=self.progress_source,
            handle=handle,
            rclone_command=self.rclone_command,
            rclone_config_path=self.rclone_config_path,
            terminate_grace_seconds=self.terminate_grace_seconds,
        ).start()
        return job_id

    def get_job(self, job_id: str, *, refresh_from_log: bool = False) -> TransferJob | None:
        """Current job state; optionally re-derive running progress from its log."""

        if refresh_from_log:
            self.refresh_progress_from_log(job_id)
        return self.registry.get(job_id)

    def list_jobs(self) -> list[TransferJob]:
        return self.registry.list()

    def get_job_log(self, job_id: str) -> str | None:
        try:
            return self.log_writer.read(job_id)
        except JobLogNotFoundError as error:
            logger.warning("Log read failed for job %s: %s", job_id, error)
            return None

    def delete_job(self, job_id: str) -> DeleteOutcome:
        """Remove a finished job and erase its log."""

        result = self.registry.remove_if(job_id, lambda job: job.is_terminal)
        if result == RemoveResult.NOT_FOUND:
            logger.warning("Job %s not found for deletion", job_id)
            return DeleteOutcome.NOT_FOUND
        if result == RemoveResult.REJECTED:
            logger.info("Job %s is still active; deletion rejected", job_id)
            return DeleteOutcome.NOT_TERMINAL
        self.log_writer.delete(job_id)
        logger.info("Deleted job %s", job_id)
        return DeleteOutcome.DELETED

    def cancel_job(self, job_id: str) -> CancelOutcome:
        """Ask the supervisor to stop the transfer; the job ends as canceled."""

        job = self.registry.get(job_id)
        handle = self.registry.handle(job_id)
        if job is None or handle is None:
            return CancelOutcome.NOT_FOUND
        if job.is_terminal:
            return CancelOutcome.ALREADY_TERMINAL
        logger.info("Cancel requested for job %s", job_id)
        handle.request_cancel()
        return CancelOutcome.CANCEL_REQUESTED

    def wait(self, job_id: str, timeout: float | None = None) -> TransferJob | None:
        """Block until the job's supervisor finishes or ``timeout`` elapses."""

        handle = self.registry.handle(job_id)
        if handle is not None and handle.thread is not None:
            handle.thread.join(timeout)
        return self.registry.get(job_id)

    def refresh_progress_from_log(self, job_id: str) -> bool:
        """Apply the last progress found in the job log to a running job."""

        job = self.registry.get(job_id)
        if job is None or job.status != JobStatus.RUNNING:
            return False
        try:
            text = self.log_writer.read(job_id)
        except JobLogNotFoundError:
            return False
        progress = last_progress(text.splitlines())
        if progress is None:
            return False

        def mutate(current: TransferJob) -> None:
            if current.status != JobStatus.RUNNING:
                return
            current.progress_percent = progress.percent
            current.bytes_transferred = progress.transferred
            current.bytes_total = progress.total

        return self.registry.update(job_id, mutate)

    def cleanup_orphaned_logs(self) -> list[str]:
        """Delete stale log files left over from jobs this process does not know.

        Logs written within ``orphan_log_min_age_seconds`` are kept; they may
        belong to a job another process is still running.
        """

        return self.log_writer.cleanup_orphans(
            self.registry.ids(),
            modified_before=orphan_cutoff(self.orphan_log_min_age_seconds),
        )


def _validate_request(request: TransferRequest) -> None:
    if not request.source_path.strip():
        raise SubmissionError("Source path must not be empty.")
    if not request.remote_name.strip():
        raise SubmissionError("Remote name must not be empty.")
    if ":" in request.remote_name:
        raise SubmissionError(
            f"Remote name must not contain ':'; got {request.remote_name!r}.",
        )
