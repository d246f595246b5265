from __future__ import annotations

import sqlite3
from pathlib import Path

import allure
import pytest

from rclone_jobs.orchestrator.errors import PresetNotFoundError, PresetValidationError
from rclone_jobs.orchestrator.models import JobStatus
from rclone_jobs.orchestrator.presets import (
    PresetRepository,
    PresetService,
    validate_preset_name,
)
from rclone_jobs.storage.alembic_runner import presets_alembic_config, upgrade_presets_schema

pytestmark = [
    allure.epic("Transfer Jobs"),
    allure.feature("Saved Presets"),
]


@pytest.fixture()
def repository(tmp_path: Path):
    repo = PresetRepository(tmp_path / "db" / "tasks.db")
    repo.init_schema()
    yield repo
    repo.close()


def test_alembic_schema_is_initialized_to_head(repository: PresetRepository) -> None:
    connection = sqlite3.connect(repository.db_path)
    try:
        version = connection.execute("SELECT version_num FROM alembic_version").fetchone()
        columns = [row[1] for row in connection.execute("PRAGMA table_info(transfer_presets)")]
    finally:
        connection.close()

    assert version == ("20261018_0001",)
    assert columns == [
        "preset_id",
        "name",
        "source_path",
        "remote_name",
        "remote_path",
        "chunk_size",
        "use_chunking",
        "created_at",
    ]


def test_schema_upgrade_creates_missing_database_directory(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "state" / "presets.db"

    upgrade_presets_schema(db_path)
    upgrade_presets_schema(db_path)

    config = presets_alembic_config(db_path)
    assert config.get_main_option("sqlalchemy.url") == f"sqlite:///{db_path}"
    connection = sqlite3.connect(db_path)
    try:
        version = connection.execute("SELECT version_num FROM alembic_version").fetchall()
    finally:
        connection.close()
    assert version == [("20261018_0001",)]


def test_create_list_and_lookup(repository: PresetRepository) -> None:
    nightly = repository.create(
        name="nightly",
        source_path="/srv/media",
        remote_name="nas",
        remote_path="backup",
        chunk_size="32M",
        use_chunking=True,
    )
    photos = repository.create(
        name="photos_2026",
        source_path="/srv/photos",
        remote_name="nas",
        remote_path="pictures",
    )

    assert [preset.name for preset in repository.list()] == ["photos_2026", "nightly"]
    found = repository.get_by_name("nightly")
    assert found == nightly
    assert found.created_at.tzinfo is not None
    assert found.to_request().chunk_size == "32M"
    assert photos.to_request().chunk_size is None
    assert repository.name_exists("photos_2026") is True
    assert repository.get_by_name("missing") is None


def test_duplicate_name_is_rejected(repository: PresetRepository) -> None:
    repository.create(name="nightly", source_path="/a", remote_name="nas", remote_path="")

    with pytest.raises(PresetValidationError, match="already exists"):
        repository.create(name="nightly", source_path="/b", remote_name="nas", remote_path="")

    assert len(repository.list()) == 1


def test_chunk_size_is_dropped_when_chunking_disabled(repository: PresetRepository) -> None:
    preset = repository.create(
        name="plain",
        source_path="/a",
        remote_name="nas",
        remote_path="",
        chunk_size="64M",
        use_chunking=False,
    )

    assert preset.chunk_size is None
    assert preset.use_chunking is False


def test_unsupported_chunk_size_is_rejected(repository: PresetRepository) -> None:
    with pytest.raises(PresetValidationError, match="Unsupported chunk size"):
        repository.create(
            name="odd",
            source_path="/a",
            remote_name="nas",
            remote_path="",
            chunk_size="3M",
            use_chunking=True,
        )


@pytest.mark.parametrize(
    ("name", "message"),
    [
        ("   ", "cannot be empty"),
        ("x" * 51, "at most 50"),
        ("bad name!", "letters, numbers"),
    ],
)
def test_invalid_names(name: str, message: str) -> None:
    with pytest.raises(PresetValidationError, match=message):
        validate_preset_name(name)


def test_name_is_trimmed() -> None:
    assert validate_preset_name("  weekly-sync ") == "weekly-sync"
    assert validate_preset_name("x" * 50) == "x" * 50


def test_delete(repository: PresetRepository) -> None:
    repository.create(name="temp", source_path="/a", remote_name="nas", remote_path="")

    assert repository.delete("temp") is True
    assert repository.delete("temp") is False
    assert repository.list() == []


def test_service_starts_job_from_preset(
    tmp_path: Path,
    repository: PresetRepository,
    make_orchestrator,
) -> None:
    source = tmp_path / "payload.bin"
    source.write_bytes(b"x")
    repository.create(
        name="nightly",
        source_path=str(source),
        remote_name="nas",
        remote_path="backup",
        chunk_size="16M",
        use_chunking=True,
    )
    orchestrator = make_orchestrator()
    service = PresetService(repository, orchestrator)

    job_id = service.start("nightly")
    job = orchestrator.wait(job_id, timeout=30)

    assert job.status == JobStatus.COMPLETED
    assert job.remote_target == "nas:backup"
    assert "--multi-thread-cutoff=16M" in orchestrator.get_job_log(job_id)

    with pytest.raises(PresetNotFoundError):
        service.start("missing")
