"""Append-only per-job log files."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from rclone_jobs.orchestrator.errors import JobLogNotFoundError
from rclone_jobs.orchestrator.models import TransferRequest
from rclone_jobs.storage.common import utc_now

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".log"


def format_header_timestamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_line_timestamp(moment: datetime) -> str:
    return moment.strftime("%H:%M:%S")


def orphan_cutoff(min_age_seconds: float) -> float:
    """POSIX timestamp before which an unknown job log counts as orphaned."""

    return time.time() - min_age_seconds


class JobLogWriter:
    """One log file per job under ``log_root``, named by job id.

    Files are opened per call and flushed before returning, so readers always
    see every appended line and no handle outlives a call.
    """

    def __init__(self, log_root: Path) -> None:
        self.log_root = log_root

    def path_for(self, job_id: str) -> Path:
        return self.log_root / f"{job_id}{LOG_SUFFIX}"

    def create_initial(self, job_id: str, request: TransferRequest) -> Path:
        """Write the log header; an existing log is left untouched."""

        path = self.path_for(job_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        stamp = format_header_timestamp(utc_now())
        header = (
            f"[{stamp}] Job {job_id} started\n"
            f"[{stamp}] Source: {request.source_path}\n"
            f"[{stamp}] Remote: {request.remote_name}\n"
            f"[{stamp}] Target: {request.remote_target}\n"
            f"[{stamp}] Starting rclone operation...\n\n"
        )
        try:
            with path.open("x", encoding="utf-8") as handle:
                handle.write(header)
                handle.flush()
        except FileExistsError:
            logger.debug("Initial log for job %s already exists", job_id)
        return path

    def append(self, job_id: str, line: str, *, timestamp: bool = True) -> None:
        """Append one entry; raises ``OSError`` when the log cannot be written."""

        path = self.path_for(job_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        entry = f"[{format_line_timestamp(utc_now())}] {line}" if timestamp else line
        if not entry.endswith("\n"):
            entry += "\n"
        with path.open("a", encoding="utf-8") as handle:
            handle.write(entry)
            handle.flush()

    def read(self, job_id: str) -> str:
        path = self.path_for(job_id)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError as error:
            raise JobLogNotFoundError(job_id, str(path)) from error

    def delete(self, job_id: str) -> bool:
        path = self.path_for(job_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Could not delete log file %s: not found", path)
            return False
        except OSError as error:
            logger.warning("Could not delete log file %s: %s", path, error)
            return False
        return True

    def list_job_ids(self) -> list[str]:
        if not self.log_root.is_dir():
            return []
        return sorted(path.stem for path in self.log_root.glob(f"*{LOG_SUFFIX}") if path.is_file())

    def cleanup_orphans(
        self,
        known_ids: Iterable[str],
        *,
        modified_before: float | None = None,
    ) -> list[str]:
        """Delete logs whose job id is not in ``known_ids``.

        With ``modified_before`` (a POSIX timestamp) only logs last written
        earlier than that moment are removed, so a log another process is
        still appending to survives.
        """

        known = set(known_ids)
        removed: list[str] = []
        for job_id in self.list_job_ids():
            if job_id in known:
                continue
            if modified_before is not None and not self._modified_before(job_id, modified_before):
                continue
            if self.delete(job_id):
                removed.append(job_id)
        if removed:
            logger.info("Removed %d orphaned job log(s) from %s", len(removed), self.log_root)
        return removed

    def _modified_before(self, job_id: str, moment: float) -> bool:
        path = self.path_for(job_id)
        try:
            modified = path.stat().st_mtime
        except OSError as error:
            logger.warning("Could not stat log file %s: %s", path, error)
            return False
        if modified >= moment:
            logger.debug("Keeping recently written log %s", path)
            return False
        return True
