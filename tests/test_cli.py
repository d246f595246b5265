from __future__ import annotations

import json
import os
import shlex
import sys
import time
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from rclone_jobs.main import rclone_jobs

pytestmark = [
    allure.epic("Transfer Jobs"),
    allure.feature("CLI"),
]

_FAKE_RCLONE = f"{shlex.quote(sys.executable)} -m rclone_jobs.orchestrator.backend.fake_rclone"


@pytest.fixture()
def cli_env(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("RCLONE_JOBS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("RCLONE_JOBS_RCLONE_COMMAND", _FAKE_RCLONE)
    monkeypatch.setenv("RCLONE_JOBS_PROGRESS_CHANNEL", "stream")
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("RCLONE_JOBS_LOG_DIR", raising=False)
    monkeypatch.delenv("RCLONE_JOBS_DB_PATH", raising=False)
    source = tmp_path / "payload.bin"
    source.write_bytes(b"x")
    return source


def test_run_follows_transfer_to_completion(cli_env: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        rclone_jobs,
        ["run", str(cli_env), "nas", "backup", "--chunk-size", "8M", "--poll-seconds", "0.05"],
    )

    assert result.exit_code == 0, result.output
    assert "Job submitted:" in result.output
    assert "completed" in result.output
    assert "100.00%" in result.output
    assert "exit code 0" in result.output


def test_run_exits_non_zero_when_transfer_fails(cli_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_RCLONE_EXIT_CODE", "5")
    runner = CliRunner()

    result = runner.invoke(rclone_jobs, ["run", str(cli_env), "nas", "backup"])

    assert result.exit_code == 1
    assert "failed (exit code 5)" in result.output
    assert "Transfer did not complete." in result.output


def test_run_rejects_malformed_remote(cli_env: Path) -> None:
    result = CliRunner().invoke(rclone_jobs, ["run", str(cli_env), "nas:", "backup"])

    assert result.exit_code == 1
    assert "must not contain ':'" in result.output


def test_args_prints_rclone_command(cli_env: Path) -> None:
    result = CliRunner().invoke(
        rclone_jobs,
        ["args", "/srv/media", "nas", "backup", "--chunk-size", "128M"],
    )

    assert result.exit_code == 0, result.output
    assert "copy --config" in result.output
    assert "nas:backup" in result.output
    assert "--multi-thread-streams=8" in result.output
    assert "streams=8 cutoff=128M protocol_chunk=96M" in result.output


def test_parse_progress_reports_last_record(tmp_path: Path) -> None:
    log_file = tmp_path / "rclone.log"
    log_file.write_text(
        "\n".join(
            [
                json.dumps({"stats": {"bytes": 100, "totalBytes": 500, "transfers": 0}}),
                "noise",
                json.dumps({"stats": {"bytes": 500, "totalBytes": 500, "transfers": 1}}),
            ],
        ),
        encoding="utf-8",
    )

    result = CliRunner().invoke(rclone_jobs, ["parse-progress", str(log_file)])

    assert result.exit_code == 0, result.output
    assert "Progress: 100.00% transferred=500 total=500" in result.output


def test_parse_progress_without_matches(tmp_path: Path) -> None:
    log_file = tmp_path / "empty.log"
    log_file.write_text("nothing here\n", encoding="utf-8")

    result = CliRunner().invoke(rclone_jobs, ["parse-progress", str(log_file)])

    assert "No progress found." in result.output


def test_logs_cleanup_removes_orphans(cli_env: Path, tmp_path: Path) -> None:
    log_dir = tmp_path / "data" / "log"
    log_dir.mkdir(parents=True)
    old_log = log_dir / "old-job.log"
    old_log.write_text("stale", encoding="utf-8")
    an_hour_ago = time.time() - 3600
    os.utime(old_log, (an_hour_ago, an_hour_ago))
    (log_dir / "busy-job.log").write_text("still being written", encoding="utf-8")

    result = CliRunner().invoke(rclone_jobs, ["logs", "cleanup"])

    assert result.exit_code == 0, result.output
    assert "Removed orphaned logs: 1" in result.output
    assert "- old-job" in result.output
    assert "busy-job" not in result.output
    assert not old_log.exists()
    assert (log_dir / "busy-job.log").exists()


def test_preset_lifecycle(cli_env: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "presets.db"

    added = runner.invoke(
        rclone_jobs,
        [
            "preset",
            "add",
            "--db-path",
            str(db_path),
            "nightly",
            str(cli_env),
            "nas",
            "backup",
            "--chunk-size",
            "32M",
        ],
    )
    assert added.exit_code == 0, added.output
    assert "Preset saved: nightly" in added.output

    listed = runner.invoke(rclone_jobs, ["preset", "list", "--db-path", str(db_path)])
    assert "nightly:" in listed.output
    assert "chunk=32M" in listed.output

    started = runner.invoke(
        rclone_jobs,
        ["preset", "run", "--db-path", str(db_path), "nightly", "--poll-seconds", "0.05"],
    )
    assert started.exit_code == 0, started.output
    assert "completed" in started.output

    deleted = runner.invoke(rclone_jobs, ["preset", "delete", "--db-path", str(db_path), "nightly"])
    assert "Preset deleted: nightly" in deleted.output

    missing = runner.invoke(rclone_jobs, ["preset", "run", "--db-path", str(db_path), "nightly"])
    assert missing.exit_code == 1
    assert "Preset not found: nightly" in missing.output

    empty = runner.invoke(rclone_jobs, ["preset", "list", "--db-path", str(db_path)])
    assert "No presets saved." in empty.output


def test_preset_add_rejects_invalid_name(cli_env: Path, tmp_path: Path) -> None:
    result = CliRunner().invoke(
        rclone_jobs,
        [
            "preset",
            "add",
            "--db-path",
            str(tmp_path / "presets.db"),
            "bad name",
            str(cli_env),
            "nas",
        ],
    )

    assert result.exit_code == 1
    assert "letters, numbers" in result.output
