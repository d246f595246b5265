"""Runtime configuration for transfer job orchestration."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from rclone_jobs.orchestrator.arguments import PROGRESS_CHANNEL_STREAM, PROGRESS_CHANNELS

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class RcloneSettings:
    """How the external transfer tool is invoked."""

    command: tuple[str, ...] = ("rclone",)
    config_path: Path = Path("data/cfg/rclone.conf")
    progress_channel: str = PROGRESS_CHANNEL_STREAM
    log_tail_poll_seconds: float = 1.0
    terminate_grace_seconds: float = 2.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    data_dir: Path = Path("data")
    log_dir: Path = Path("data/log")
    db_path: Path = Path("data/tasks.db")
    rclone: RcloneSettings = field(default_factory=RcloneSettings)
    cleanup_orphaned_logs_on_start: bool = True
    orphan_log_min_age_seconds: float = 300.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from ``RCLONE_JOBS_*`` environment variables."""

        data_dir = Path(os.getenv("RCLONE_JOBS_DATA_DIR", "data"))
        command_raw = os.getenv("RCLONE_JOBS_RCLONE_COMMAND", "rclone").strip()
        return cls(
            data_dir=data_dir,
            log_dir=Path(os.getenv("RCLONE_JOBS_LOG_DIR", str(data_dir / "log"))),
            db_path=db_path or Path(os.getenv("RCLONE_JOBS_DB_PATH", str(data_dir / "tasks.db"))),
            rclone=RcloneSettings(
                command=tuple(shlex.split(command_raw)) or ("rclone",),
                config_path=Path(
                    os.getenv("RCLONE_JOBS_RCLONE_CONFIG", str(data_dir / "cfg" / "rclone.conf")),
                ),
                progress_channel=os.getenv(
                    "RCLONE_JOBS_PROGRESS_CHANNEL",
                    PROGRESS_CHANNEL_STREAM,
                )
                .strip()
                .lower(),
                log_tail_poll_seconds=float(
                    os.getenv("RCLONE_JOBS_LOG_TAIL_POLL_SECONDS", "1.0"),
                ),
                terminate_grace_seconds=float(
                    os.getenv("RCLONE_JOBS_TERMINATE_GRACE_SECONDS", "2.0"),
                ),
            ),
            cleanup_orphaned_logs_on_start=_env_bool(
                "RCLONE_JOBS_CLEANUP_ORPHANED_LOGS",
                default=True,
            ),
            orphan_log_min_age_seconds=float(
                os.getenv("RCLONE_JOBS_ORPHAN_LOG_MIN_AGE_SECONDS", "300"),
            ),
            log_level=os.getenv("RCLONE_JOBS_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for unusable values."""

        if self.rclone.progress_channel not in PROGRESS_CHANNELS:
            raise ValueError(
                "RCLONE_JOBS_PROGRESS_CHANNEL must be one of "
                f"{', '.join(PROGRESS_CHANNELS)}; got {self.rclone.progress_channel!r}.",
            )
        if self.rclone.log_tail_poll_seconds <= 0:
            raise ValueError("RCLONE_JOBS_LOG_TAIL_POLL_SECONDS must be > 0.")
        if self.rclone.terminate_grace_seconds < 0:
            raise ValueError("RCLONE_JOBS_TERMINATE_GRACE_SECONDS must be >= 0.")
        if self.orphan_log_min_age_seconds < 0:
            raise ValueError("RCLONE_JOBS_ORPHAN_LOG_MIN_AGE_SECONDS must be >= 0.")
        if not self.rclone.command:
            raise ValueError("RCLONE_JOBS_RCLONE_COMMAND must not be empty.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"RCLONE_JOBS_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}; "
                f"got {self.log_level!r}.",
            )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
