from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import allure
import pytest

from rclone_jobs.config import RcloneSettings, Settings
from rclone_jobs.orchestrator.services import TransferOrchestrator
from rclone_jobs.orchestrator.sources import LogTailSource, StreamingSource

pytestmark = [
    allure.epic("Transfer Jobs"),
    allure.feature("Configuration"),
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in list(os.environ):
        if name.startswith("RCLONE_JOBS_"):
            monkeypatch.delenv(name, raising=False)


def test_defaults_are_derived_from_data_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("RCLONE_JOBS_DATA_DIR", str(tmp_path))

    settings = Settings.from_env()

    assert settings.log_dir == tmp_path / "log"
    assert settings.db_path == tmp_path / "tasks.db"
    assert settings.rclone.config_path == tmp_path / "cfg" / "rclone.conf"
    assert settings.rclone.command == ("rclone",)
    assert settings.rclone.progress_channel == "stream"
    assert settings.cleanup_orphaned_logs_on_start is True
    settings.validate()


def test_explicit_overrides(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("RCLONE_JOBS_RCLONE_COMMAND", "/opt/rclone/bin/rclone --ask-password=false")
    monkeypatch.setenv("RCLONE_JOBS_PROGRESS_CHANNEL", " LOG ")
    monkeypatch.setenv("RCLONE_JOBS_LOG_TAIL_POLL_SECONDS", "0.25")
    monkeypatch.setenv("RCLONE_JOBS_CLEANUP_ORPHANED_LOGS", "off")
    monkeypatch.setenv("RCLONE_JOBS_LOG_LEVEL", "debug")

    settings = Settings.from_env(db_path=tmp_path / "custom.db")

    assert settings.db_path == tmp_path / "custom.db"
    assert settings.rclone.command == ("/opt/rclone/bin/rclone", "--ask-password=false")
    assert settings.rclone.progress_channel == "log"
    assert settings.rclone.log_tail_poll_seconds == 0.25
    assert settings.cleanup_orphaned_logs_on_start is False
    assert settings.log_level == "DEBUG"
    settings.validate()


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("RCLONE_JOBS_CLEANUP_ORPHANED_LOGS", "sometimes")

    with pytest.raises(ValueError, match="RCLONE_JOBS_CLEANUP_ORPHANED_LOGS"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("rclone", "log_level", "message"),
    [
        (RcloneSettings(progress_channel="carrier-pigeon"), "INFO", "PROGRESS_CHANNEL"),
        (RcloneSettings(log_tail_poll_seconds=0), "INFO", "LOG_TAIL_POLL_SECONDS"),
        (RcloneSettings(terminate_grace_seconds=-1), "INFO", "TERMINATE_GRACE_SECONDS"),
        (RcloneSettings(command=()), "INFO", "RCLONE_COMMAND"),
        (RcloneSettings(), "CHATTY", "LOG_LEVEL"),
    ],
)
def test_validate_rejects_unusable_values(
    rclone: RcloneSettings,
    log_level: str,
    message: str,
) -> None:
    settings = Settings(rclone=rclone, log_level=log_level)

    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_orchestrator_from_settings_picks_progress_source(tmp_path: Path) -> None:
    stream_settings = Settings(log_dir=tmp_path / "log", cleanup_orphaned_logs_on_start=False)
    log_settings = Settings(
        log_dir=tmp_path / "log",
        rclone=RcloneSettings(command=(sys.executable,), progress_channel="log"),
        cleanup_orphaned_logs_on_start=False,
    )

    assert isinstance(
        TransferOrchestrator.from_settings(stream_settings).progress_source,
        StreamingSource,
    )
    log_orchestrator = TransferOrchestrator.from_settings(log_settings)
    assert isinstance(log_orchestrator.progress_source, LogTailSource)
    assert log_orchestrator.rclone_command == (sys.executable,)


def test_from_settings_cleans_orphaned_logs_on_start(tmp_path: Path) -> None:
    log_dir = tmp_path / "log"
    log_dir.mkdir()
    stale = log_dir / "stale.log"
    stale.write_text("old run", encoding="utf-8")
    an_hour_ago = time.time() - 3600
    os.utime(stale, (an_hour_ago, an_hour_ago))
    (log_dir / "busy.log").write_text("another process is still writing", encoding="utf-8")

    TransferOrchestrator.from_settings(Settings(log_dir=log_dir))

    assert not stale.exists()
    assert (log_dir / "busy.log").exists()


def test_orphan_log_min_age_from_env(monkeypatch) -> None:
    monkeypatch.setenv("RCLONE_JOBS_ORPHAN_LOG_MIN_AGE_SECONDS", "60")

    assert Settings.from_env().orphan_log_min_age_seconds == 60.0
    assert Settings().orphan_log_min_age_seconds == 300.0


def test_validate_rejects_negative_orphan_log_age() -> None:
    with pytest.raises(ValueError, match="ORPHAN_LOG_MIN_AGE_SECONDS"):
        Settings(orphan_log_min_age_seconds=-1).validate()
