"""Saved transfer presets: named source/remote pairs that can be re-run."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from rclone_jobs.orchestrator.arguments import normalize_chunk_hint
from rclone_jobs.orchestrator.errors import PresetNotFoundError, PresetValidationError
from rclone_jobs.orchestrator.models import TransferRequest
from rclone_jobs.orchestrator.services import TransferOrchestrator
from rclone_jobs.storage.alembic_runner import upgrade_presets_schema
from rclone_jobs.storage.common import build_sqlite_engine, ensure_utc, utc_now
from rclone_jobs.storage.sqlmodel_models import TransferPresetRow

logger = logging.getLogger(__name__)

MAX_PRESET_NAME_LENGTH = 50
_PRESET_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(slots=True, frozen=True)
class TransferPreset:
    preset_id: str
    name: str
    source_path: str
    remote_name: str
    remote_path: str
    chunk_size: str | None
    use_chunking: bool
    created_at: datetime

    def to_request(self) -> TransferRequest:
        return TransferRequest(
            source_path=self.source_path,
            remote_name=self.remote_name,
            remote_path=self.remote_path,
            chunk_size=self.chunk_size if self.use_chunking else None,
        )


def validate_preset_name(name: str) -> str:
    """Return the trimmed name or raise ``PresetValidationError``."""

    trimmed = name.strip()
    if not trimmed:
        raise PresetValidationError("Preset name cannot be empty")
    if len(trimmed) > MAX_PRESET_NAME_LENGTH:
        raise PresetValidationError(
            f"Preset name must be at most {MAX_PRESET_NAME_LENGTH} characters",
        )
    if not _PRESET_NAME_RE.match(trimmed):
        raise PresetValidationError(
            "Preset name can only contain letters, numbers, underscores, and hyphens",
        )
    return trimmed


class PresetRepository:
    """SQLModel persistence for presets, schema managed by Alembic."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_presets_schema(self.db_path)

    def create(  # noqa: PLR0913
        self,
        *,
        name: str,
        source_path: str,
        remote_name: str,
        remote_path: str,
        chunk_size: str | None = None,
        use_chunking: bool = False,
    ) -> TransferPreset:
        clean_name = validate_preset_name(name)
        if not source_path.strip():
            raise PresetValidationError("Source path cannot be empty")
        if not remote_name.strip():
            raise PresetValidationError("Remote name cannot be empty")
        if use_chunking and normalize_chunk_hint(chunk_size) is None:
            raise PresetValidationError(f"Unsupported chunk size: {chunk_size!r}")

        row = TransferPresetRow(
            preset_id=str(uuid4()),
            name=clean_name,
            source_path=source_path,
            remote_name=remote_name,
            remote_path=remote_path,
            chunk_size=chunk_size if use_chunking else None,
            use_chunking=use_chunking,
            created_at=utc_now(),
        )
        with Session(self.engine) as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise PresetValidationError(
                    f"Preset name '{clean_name}' already exists",
                ) from error
            session.refresh(row)
            preset = _to_domain(row)
        logger.info("Saved preset %s (%s)", preset.name, preset.preset_id)
        return preset

    def list(self) -> list[TransferPreset]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TransferPresetRow).order_by(col(TransferPresetRow.created_at).desc()),
            ).all()
            return [_to_domain(row) for row in rows]

    def get_by_name(self, name: str) -> TransferPreset | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(TransferPresetRow).where(TransferPresetRow.name == name.strip()),
            ).one_or_none()
            return _to_domain(row) if row is not None else None

    def name_exists(self, name: str) -> bool:
        return self.get_by_name(name) is not None

    def delete(self, name: str) -> bool:
        with Session(self.engine) as session:
            row = session.exec(
                select(TransferPresetRow).where(TransferPresetRow.name == name.strip()),
            ).one_or_none()
            if row is None:
                return False
            session.delete(row)
            session.commit()
        logger.info("Deleted preset %s", name)
        return True


class PresetService:
    """Starts transfer jobs from saved presets."""

    def __init__(self, repository: PresetRepository, orchestrator: TransferOrchestrator) -> None:
        self.repository = repository
        self.orchestrator = orchestrator

    def start(self, name: str) -> str:
        preset = self.repository.get_by_name(name)
        if preset is None:
            raise PresetNotFoundError(f"Preset not found: {name}")
        job_id = self.orchestrator.submit(preset.to_request())
        logger.info("Started job %s from preset %s", job_id, preset.name)
        return job_id


def _to_domain(row: TransferPresetRow) -> TransferPreset:
    return TransferPreset(
        preset_id=row.preset_id,
        name=row.name,
        source_path=row.source_path,
        remote_name=row.remote_name,
        remote_path=row.remote_path,
        chunk_size=row.chunk_size,
        use_chunking=row.use_chunking,
        created_at=ensure_utc(row.created_at),
    )
