"""Controllers for transfer job CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from rclone_jobs.config import Settings
from rclone_jobs.orchestrator.arguments import build_arguments
from rclone_jobs.orchestrator.errors import JobNotFoundError, PresetNotFoundError
from rclone_jobs.orchestrator.job_log import JobLogWriter, orphan_cutoff
from rclone_jobs.orchestrator.models import JobStatus, TransferJob, TransferRequest
from rclone_jobs.orchestrator.presets import PresetRepository, PresetService, TransferPreset
from rclone_jobs.orchestrator.progress import last_progress
from rclone_jobs.orchestrator.services import TransferOrchestrator


@dataclass(slots=True)
class TransferRunCommand:
    """CLI input for a foreground transfer."""

    source_path: str
    remote_name: str
    remote_path: str
    chunk_size: str | None
    poll_seconds: float = 1.0


@dataclass(slots=True)
class TransferArgsCommand:
    """CLI input for printing the rclone invocation."""

    source_path: str
    remote_name: str
    remote_path: str
    chunk_size: str | None
    log_path: Path | None = None


@dataclass(slots=True)
class ParseProgressCommand:
    log_file: Path


@dataclass(slots=True)
class PresetAddCommand:
    """CLI input for saving a preset."""

    db_path: Path | None
    name: str
    source_path: str
    remote_name: str
    remote_path: str
    chunk_size: str | None


@dataclass(slots=True)
class PresetNameCommand:
    db_path: Path | None
    name: str


@dataclass(slots=True)
class TransferRunResult:
    lines: list[str]
    success: bool


class TransferCliController:
    """Coordinates foreground transfers, log maintenance and presets."""

    def run_transfer(self, command: TransferRunCommand) -> TransferRunResult:
        settings = Settings.from_env()
        orchestrator = TransferOrchestrator.from_settings(settings)
        job_id = orchestrator.submit(
            TransferRequest(
                source_path=command.source_path,
                remote_name=command.remote_name,
                remote_path=command.remote_path,
                chunk_size=command.chunk_size,
            ),
        )
        return _follow_job(orchestrator, job_id, poll_seconds=command.poll_seconds)

    def render_args(self, command: TransferArgsCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate()
        log_path = command.log_path or JobLogWriter(settings.log_dir).path_for("<job-id>")
        argument_set = build_arguments(
            command.source_path,
            command.remote_name,
            command.remote_path,
            command.chunk_size,
            config_path=settings.rclone.config_path,
            progress_channel=settings.rclone.progress_channel,
            log_path=log_path,
        )
        return [
            argument_set.render(settings.rclone.command),
            f"streams={argument_set.streams} cutoff={argument_set.multi_thread_cutoff} "
            f"protocol_chunk={argument_set.protocol_chunk_size or '-'}",
        ]

    def parse_progress(self, command: ParseProgressCommand) -> list[str]:
        text = command.log_file.read_text(encoding="utf-8", errors="replace")
        progress = last_progress(text.splitlines())
        if progress is None:
            return ["No progress found."]
        return [
            f"Progress: {progress.percent:.2f}% "
            f"transferred={progress.transferred} total={progress.total}",
        ]

    def cleanup_logs(self) -> list[str]:
        settings = Settings.from_env()
        settings.validate()
        removed = JobLogWriter(settings.log_dir).cleanup_orphans(
            (),
            modified_before=orphan_cutoff(settings.orphan_log_min_age_seconds),
        )
        lines = [f"Removed orphaned logs: {len(removed)}"]
        lines.extend(f"- {job_id}" for job_id in removed)
        return lines

    def add_preset(self, command: PresetAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _preset_repository(settings) as repository:
            preset = repository.create(
                name=command.name,
                source_path=command.source_path,
                remote_name=command.remote_name,
                remote_path=command.remote_path,
                chunk_size=command.chunk_size,
                use_chunking=command.chunk_size is not None,
            )
        return [f"Preset saved: {_preset_line(preset)}"]

    def list_presets(self, db_path: Path | None) -> list[str]:
        settings = Settings.from_env(db_path=db_path)
        with _preset_repository(settings) as repository:
            presets = repository.list()
        if not presets:
            return ["No presets saved."]
        return [_preset_line(preset) for preset in presets]

    def delete_preset(self, command: PresetNameCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _preset_repository(settings) as repository:
            if not repository.delete(command.name):
                raise PresetNotFoundError(f"Preset not found: {command.name}")
        return [f"Preset deleted: {command.name}"]

    def run_preset(self, command: PresetNameCommand, *, poll_seconds: float) -> TransferRunResult:
        settings = Settings.from_env(db_path=command.db_path)
        orchestrator = TransferOrchestrator.from_settings(settings)
        with _preset_repository(settings) as repository:
            job_id = PresetService(repository, orchestrator).start(command.name)
        return _follow_job(orchestrator, job_id, poll_seconds=poll_seconds)


def _follow_job(
    orchestrator: TransferOrchestrator,
    job_id: str,
    *,
    poll_seconds: float,
) -> TransferRunResult:
    lines = [f"Job submitted: {job_id}"]
    last_percent: float | None = None
    while True:
        job = orchestrator.wait(job_id, timeout=poll_seconds)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_terminal:
            break
        if job.progress_percent != last_percent:
            last_percent = job.progress_percent
            lines.append(_progress_line(job))

    lines.append(_progress_line(job))
    lines.append(f"Job {job.job_id} {job.status.value}" + _outcome_suffix(job))
    lines.append(f"Log: {job.log_path}")
    return TransferRunResult(lines=lines, success=job.status == JobStatus.COMPLETED)


def _progress_line(job: TransferJob) -> str:
    return (
        f"[{job.status.value}] {job.progress_percent:.2f}% "
        f"({job.bytes_transferred}/{job.bytes_total} bytes)"
    )


def _outcome_suffix(job: TransferJob) -> str:
    if job.exit_code is not None:
        return f" (exit code {job.exit_code})"
    if job.error_detail:
        return f": {job.error_detail}"
    return ""


def _preset_line(preset: TransferPreset) -> str:
    chunk = preset.chunk_size if preset.use_chunking else "-"
    return (
        f"{preset.name}: {preset.source_path} -> {preset.remote_name}:{preset.remote_path} "
        f"chunk={chunk}"
    )


@contextmanager
def _preset_repository(settings: Settings) -> Iterator[PresetRepository]:
    repository = PresetRepository(settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
