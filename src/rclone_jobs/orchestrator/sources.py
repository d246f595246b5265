"""Progress sources: where a supervisor gets rclone output units from."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from rclone_jobs.orchestrator.arguments import (
    PROGRESS_CHANNEL_LOG,
    PROGRESS_CHANNEL_STREAM,
)
from rclone_jobs.orchestrator.job_log import JobLogWriter

logger = logging.getLogger(__name__)


class ProgressSource(Protocol):
    """Yields output units of a running transfer until it exits."""

    channel: str

    @property
    def capture_output(self) -> bool:
        """Whether the process output must be piped to the supervisor."""

    def output_path(self, job_id: str) -> Path | None:
        """File the process writes its output to, when not piped."""

    def units(
        self,
        process: subprocess.Popen[str],
        *,
        job_id: str,
        cancel_event: threading.Event,
    ) -> Iterator[str]:
        """Yield output units; returns once the output is exhausted."""


class StreamingSource:
    """Reads the live stdout/stderr pipe and mirrors every line to the job log."""

    channel = PROGRESS_CHANNEL_STREAM

    def __init__(self, log_writer: JobLogWriter) -> None:
        self.log_writer = log_writer

    @property
    def capture_output(self) -> bool:
        return True

    def output_path(self, job_id: str) -> Path | None:
        return None

    def units(
        self,
        process: subprocess.Popen[str],
        *,
        job_id: str,
        cancel_event: threading.Event,
    ) -> Iterator[str]:
        stream = process.stdout
        if stream is None:
            return
        # Ends at EOF, which cancellation reaches by terminating the process.
        for raw_line in iter(stream.readline, ""):
            line = raw_line.rstrip("\r\n")
            if not line:
                continue
            self._mirror(job_id, line)
            yield line
        self._mirror(job_id, "rclone output stream ended")

    def _mirror(self, job_id: str, line: str) -> None:
        try:
            self.log_writer.append(job_id, line)
        except OSError as error:
            logger.warning("Failed to write output line to log for job %s: %s", job_id, error)


class LogTailSource:
    """Re-reads the tail of the job log that rclone writes with ``--log-file``."""

    channel = PROGRESS_CHANNEL_LOG

    def __init__(self, log_writer: JobLogWriter, *, poll_interval_seconds: float = 1.0) -> None:
        self.log_writer = log_writer
        self.poll_interval_seconds = poll_interval_seconds

    @property
    def capture_output(self) -> bool:
        return False

    def output_path(self, job_id: str) -> Path | None:
        return self.log_writer.path_for(job_id)

    def units(
        self,
        process: subprocess.Popen[str],
        *,
        job_id: str,
        cancel_event: threading.Event,
    ) -> Iterator[str]:
        path = self.log_writer.path_for(job_id)
        offset = 0
        pending = b""
        while True:
            exited = process.poll() is not None
            chunk, offset = _read_from(path, offset)
            pending += chunk
            *complete, pending = pending.split(b"\n")
            for raw_line in complete:
                line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
                if line:
                    yield line
            if exited:
                if pending.strip():
                    yield pending.decode("utf-8", errors="replace").rstrip("\r")
                return
            if cancel_event.is_set():
                # Canceled: wait for the terminating process rather than the event.
                try:
                    process.wait(timeout=self.poll_interval_seconds)
                except subprocess.TimeoutExpired:
                    continue
            else:
                cancel_event.wait(self.poll_interval_seconds)


def build_progress_source(
    channel: str,
    *,
    log_writer: JobLogWriter,
    poll_interval_seconds: float = 1.0,
) -> ProgressSource:
    if channel == PROGRESS_CHANNEL_LOG:
        return LogTailSource(log_writer, poll_interval_seconds=poll_interval_seconds)
    if channel == PROGRESS_CHANNEL_STREAM:
        return StreamingSource(log_writer)
    raise ValueError(f"Unsupported progress channel: {channel!r}")


def _read_from(path: Path, offset: int) -> tuple[bytes, int]:
    try:
        with path.open("rb") as handle:
            handle.seek(offset)
            data = handle.read()
    except FileNotFoundError:
        return b"", offset
    except OSError as error:
        logger.warning("Failed to read log tail %s: %s", path, error)
        return b"", offset
    return data, offset + len(data)
