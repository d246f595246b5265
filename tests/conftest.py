"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from rclone_jobs.orchestrator.arguments import PROGRESS_CHANNEL_STREAM
from rclone_jobs.orchestrator.job_log import JobLogWriter
from rclone_jobs.orchestrator.models import JobStatus, TransferJob
from rclone_jobs.orchestrator.services import TransferOrchestrator
from rclone_jobs.orchestrator.sources import build_progress_source

FAKE_RCLONE_COMMAND = (sys.executable, "-m", "rclone_jobs.orchestrator.backend.fake_rclone")
_SRC_DIR = Path(__file__).resolve().parents[1] / "src"


@pytest.fixture(autouse=True)
def _child_pythonpath(monkeypatch) -> None:
    """Let the fake rclone subprocess import the package without an install."""

    existing = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH",
        str(_SRC_DIR) if not existing else os.pathsep.join([str(_SRC_DIR), existing]),
    )


@pytest.fixture()
def make_orchestrator(tmp_path: Path) -> Callable[..., TransferOrchestrator]:
    def _make(
        *,
        channel: str = PROGRESS_CHANNEL_STREAM,
        command: tuple[str, ...] = FAKE_RCLONE_COMMAND,
    ) -> TransferOrchestrator:
        log_writer = JobLogWriter(tmp_path / "log")
        return TransferOrchestrator(
            log_writer=log_writer,
            progress_source=build_progress_source(
                channel,
                log_writer=log_writer,
                poll_interval_seconds=0.05,
            ),
            rclone_command=command,
            rclone_config_path=tmp_path / "cfg" / "rclone.conf",
            terminate_grace_seconds=1.0,
        )

    return _make


@pytest.fixture()
def wait_for_status() -> Callable[..., TransferJob]:
    def _wait(
        orchestrator: TransferOrchestrator,
        job_id: str,
        statuses: Iterable[JobStatus],
        timeout: float = 15.0,
    ) -> TransferJob:
        wanted = set(statuses)
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            job = orchestrator.get_job(job_id)
            if job is not None and job.status in wanted:
                return job
            time.sleep(0.02)
        raise AssertionError(f"Job {job_id} did not reach {sorted(s.value for s in wanted)}")

    return _wait
