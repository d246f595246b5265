"""Saved transfer presets."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transfer_presets",
        sa.Column("preset_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("source_path", sa.String(), nullable=False),
        sa.Column("remote_name", sa.String(), nullable=False),
        sa.Column("remote_path", sa.String(), nullable=False),
        sa.Column("chunk_size", sa.String(), nullable=True),
        sa.Column("use_chunking", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("preset_id"),
    )
    op.create_index(
        "ix_transfer_presets_name",
        "transfer_presets",
        ["name"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_transfer_presets_name", table_name="transfer_presets")
    op.drop_table("transfer_presets")
