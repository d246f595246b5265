"""SQLModel ORM tables for saved transfer presets."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class TransferPresetRow(SQLModel, table=True):
    __tablename__ = "transfer_presets"  # type: ignore[bad-override]

    preset_id: str = Field(primary_key=True)
    name: str = Field(unique=True, index=True)
    source_path: str
    remote_name: str
    remote_path: str
    chunk_size: str | None = None
    use_chunking: bool = False
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
