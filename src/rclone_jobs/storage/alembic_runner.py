"""Schema migrations for the transfer presets database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
PRESETS_HEAD = "head"


def presets_alembic_config(db_path: Path) -> Config:
    """Alembic config bound to ``db_path`` and the bundled migration scripts."""

    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_presets_schema(db_path: Path, revision: str = PRESETS_HEAD) -> None:
    """Create the presets database if missing and migrate it to ``revision``."""

    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Migrating presets database %s to %s", db_path, revision)
    command.upgrade(presets_alembic_config(db_path), revision)
