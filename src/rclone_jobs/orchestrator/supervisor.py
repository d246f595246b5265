"""Per-job supervisor: launches rclone and tracks it until exit."""

from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path

from rclone_jobs.orchestrator.arguments import build_arguments
from rclone_jobs.orchestrator.backend import (
    TransferBackend,
    TransferLaunchRequest,
    terminate_process,
)
from rclone_jobs.orchestrator.errors import TransferLaunchError
from rclone_jobs.orchestrator.job_log import JobLogWriter, format_header_timestamp
from rclone_jobs.orchestrator.models import JobStatus, TransferJob, TransferRequest
from rclone_jobs.orchestrator.progress import TransferProgress, extract_progress
from rclone_jobs.orchestrator.registry import JobHandle, JobRegistry
from rclone_jobs.orchestrator.sources import ProgressSource
from rclone_jobs.storage.common import utc_now

logger = logging.getLogger(__name__)


class JobSupervisor:
    """Owns the lifecycle of one transfer job.

    Only the supervisor mutates its job after submission. Every failure ends
    in a terminal job status; nothing propagates out of ``run``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        request: TransferRequest,
        registry: JobRegistry,
        log_writer: JobLogWriter,
        backend: TransferBackend,
        progress_source: ProgressSource,
        handle: JobHandle,
        rclone_command: tuple[str, ...] = ("rclone",),
        rclone_config_path: Path = Path("data/cfg/rclone.conf"),
        terminate_grace_seconds: float = 2.0,
    ) -> None:
        self.job_id = job_id
        self.request = request
        self.registry = registry
        self.log_writer = log_writer
        self.backend = backend
        self.progress_source = progress_source
        self.handle = handle
        self.rclone_command = rclone_command
        self.rclone_config_path = rclone_config_path
        self.terminate_grace_seconds = terminate_grace_seconds

    def start(self) -> threading.Thread:
        """Run the supervisor on its own daemon thread."""

        thread = threading.Thread(
            target=self.run,
            daemon=True,
            name=f"transfer-{self.job_id[:8]}",
        )
        self.handle.thread = thread
        thread.start()
        return thread

    def run(self) -> None:
        try:
            self._supervise()
        except Exception as error:
            logger.exception("Supervisor for job %s failed unexpectedly", self.job_id)
            self._finalize(JobStatus.ERROR, detail=f"Supervisor error: {error}")

    def _supervise(self) -> None:
        # The facade already wrote it unless that failed or the log was lost.
        self._ensure_initial_log()

        argument_set = build_arguments(
            self.request.source_path,
            self.request.remote_name,
            self.request.remote_path,
            self.request.chunk_size,
            config_path=self.rclone_config_path,
            progress_channel=self.progress_source.channel,
            log_path=self.log_writer.path_for(self.job_id),
        )
        logger.info(
            "Starting job %s: %s -> %s (streams=%d, cutoff=%s)",
            self.job_id,
            self.request.source_path,
            self.request.remote_target,
            argument_set.streams,
            argument_set.multi_thread_cutoff,
        )
        self._log(f"Executing command: {argument_set.render(self.rclone_command)}")

        if self.handle.cancel_requested:
            self._finalize(JobStatus.CANCELED)
            return

        try:
            process = self.backend.launch(
                TransferLaunchRequest(
                    command=argument_set.command(self.rclone_command),
                    capture_output=self.progress_source.capture_output,
                    output_path=self.progress_source.output_path(self.job_id),
                ),
            )
        except TransferLaunchError as error:
            logger.error("Job %s: %s", self.job_id, error)
            self._log(f"ERROR: {error}")
            self._finalize(JobStatus.ERROR, detail=str(error))
            return

        try:
            self.registry.update(self.job_id, _mark_running)
            self._log(f"Status: running (pid {process.pid})")
            self.handle.on_cancel = lambda: _signal_terminate(process)
            if self.handle.cancel_requested:
                _signal_terminate(process)

            self._follow(process)
            if self.handle.cancel_requested:
                terminate_process(process, grace_seconds=self.terminate_grace_seconds)
            try:
                exit_code = process.wait()
            except OSError as error:
                logger.error("Job %s: waiting for rclone failed: %s", self.job_id, error)
                self._finalize(JobStatus.ERROR, detail=f"Failed to wait for rclone: {error}")
                return
        except BaseException:
            # No rclone may outlive its supervisor.
            terminate_process(process, grace_seconds=self.terminate_grace_seconds)
            raise
        finally:
            self.handle.on_cancel = None
            if process.stdout is not None:
                process.stdout.close()

        if self.handle.cancel_requested:
            self._finalize(JobStatus.CANCELED, exit_code=exit_code)
        elif exit_code == 0:
            self._finalize(JobStatus.COMPLETED, exit_code=exit_code)
        else:
            self._finalize(JobStatus.FAILED, exit_code=exit_code)

    def _follow(self, process: subprocess.Popen[str]) -> None:
        units = self.progress_source.units(
            process,
            job_id=self.job_id,
            cancel_event=self.handle.cancel_event,
        )
        for unit in units:
            progress = extract_progress(unit)
            if progress is None:
                continue
            self.registry.update(self.job_id, lambda job, p=progress: _apply_progress(job, p))

    def _finalize(
        self,
        status: JobStatus,
        *,
        exit_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        finished_at = utc_now()

        def mutate(job: TransferJob) -> None:
            if job.is_terminal:
                return
            job.exit_code = exit_code
            if status == JobStatus.COMPLETED:
                job.progress_percent = 100.0
                job.bytes_transferred = max(job.bytes_transferred, job.bytes_total)
            job.transition_to(status, at=finished_at, error_detail=detail)

        self.registry.update(self.job_id, mutate)
        logger.info("Job %s finished: %s", self.job_id, _summary(status, exit_code, detail))
        self._log(
            f"\n[{format_header_timestamp(finished_at)}] Job {self.job_id} finished: "
            f"{_summary(status, exit_code, detail)}",
            timestamp=False,
        )

    def _ensure_initial_log(self) -> None:
        try:
            self.log_writer.create_initial(self.job_id, self.request)
        except OSError as error:
            logger.error("Failed to ensure initial log for job %s: %s", self.job_id, error)

    def _log(self, line: str, *, timestamp: bool = True) -> None:
        try:
            self.log_writer.append(self.job_id, line, timestamp=timestamp)
        except OSError as error:
            logger.warning("Failed to write log entry for job %s: %s", self.job_id, error)


def _mark_running(job: TransferJob) -> None:
    job.transition_to(JobStatus.RUNNING)


def _apply_progress(job: TransferJob, progress: TransferProgress) -> None:
    if job.status != JobStatus.RUNNING:
        return
    job.progress_percent = progress.percent
    job.bytes_transferred = progress.transferred
    job.bytes_total = progress.total


def _signal_terminate(process: subprocess.Popen[str]) -> None:
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except OSError as error:
        logger.warning("Failed to terminate pid %s: %s", process.pid, error)


def _summary(status: JobStatus, exit_code: int | None, detail: str | None) -> str:
    if status == JobStatus.COMPLETED:
        return "Completed successfully"
    if status == JobStatus.FAILED:
        return f"Failed with exit code: {exit_code}"
    if status == JobStatus.CANCELED:
        return "Canceled"
    return f"Error: {detail}"
