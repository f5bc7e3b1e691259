"""Create the mirror tables.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

from plansync.adapters.sqlalchemy.mappings import UTCDateTime

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_KEY_LENGTH = 128
_ENUM_LENGTH = 32


def _enum_column(name: str, **kwargs: bool) -> sa.Column[str]:
    return sa.Column(name, sa.String(_ENUM_LENGTH), **kwargs)


def upgrade() -> None:
    op.create_table(
        "canonical_item",
        _enum_column("source_system", nullable=False),
        _enum_column("item_type", nullable=False),
        sa.Column("external_id", sa.String(_KEY_LENGTH), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(_KEY_LENGTH), nullable=True),
        sa.Column("parent_external_id", sa.String(_KEY_LENGTH), nullable=True),
        sa.Column("product_ref", sa.String(_KEY_LENGTH), nullable=True),
        sa.Column("component_ref", sa.String(_KEY_LENGTH), nullable=True),
        sa.Column("initiative_refs", sa.JSON(), nullable=False),
        sa.Column("cross_system_ref", sa.String(_KEY_LENGTH), nullable=True),
        sa.Column("raw_payload", sa.JSON(), nullable=False),
        sa.Column("last_synced_at", UTCDateTime(), nullable=False),
        sa.Column("version", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint(
            "source_system", "item_type", "external_id", name="pk_canonical_item"
        ),
    )
    op.create_table(
        "relation",
        _enum_column("source_system", nullable=False),
        _enum_column("source_type", nullable=False),
        sa.Column("source_external_id", sa.String(_KEY_LENGTH), nullable=False),
        _enum_column("target_system", nullable=False),
        _enum_column("target_type", nullable=False),
        sa.Column("target_external_id", sa.String(_KEY_LENGTH), nullable=False),
        _enum_column("kind", nullable=False),
        sa.PrimaryKeyConstraint(
            "source_system",
            "source_type",
            "source_external_id",
            "target_system",
            "target_type",
            "target_external_id",
            "kind",
            name="pk_relation",
        ),
    )
    op.create_index(
        "ix_relation_target",
        "relation",
        ["target_system", "target_type", "target_external_id"],
    )
    op.create_table(
        "sync_watermark",
        _enum_column("source_system", nullable=False),
        _enum_column("entity_type", nullable=False),
        sa.Column("synced_through", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("source_system", "entity_type", name="pk_sync_watermark"),
    )
    op.create_table(
        "sync_run",
        sa.Column("run_id", sa.Uuid(), nullable=False),
        _enum_column("source_system", nullable=False),
        _enum_column("entity_type", nullable=False),
        sa.Column("full_resync", sa.Boolean(), nullable=False),
        sa.Column("started_at", UTCDateTime(), nullable=False),
        sa.Column("finished_at", UTCDateTime(), nullable=True),
        _enum_column("status", nullable=False),
        sa.Column("processed", sa.Integer(), nullable=False),
        sa.Column("created", sa.Integer(), nullable=False),
        sa.Column("updated", sa.Integer(), nullable=False),
        sa.Column("unchanged", sa.Integer(), nullable=False),
        sa.Column("failed", sa.Integer(), nullable=False),
        sa.Column("issues", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("run_id", name="pk_sync_run"),
    )
    op.create_index("ix_sync_run_started_at", "sync_run", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_sync_run_started_at", table_name="sync_run")
    op.drop_table("sync_run")
    op.drop_table("sync_watermark")
    op.drop_index("ix_relation_target", table_name="relation")
    op.drop_table("relation")
    op.drop_table("canonical_item")
