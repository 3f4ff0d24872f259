"""Create state record and metadata tables.

Revision ID: 0001
Revises:
Create Date: 2026-03-02 10:12:44
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "state_record",
        sa.Column("resource_type", sa.String(255), primary_key=True),
        sa.Column("resource_name", sa.String(255), primary_key=True),
        sa.Column("provider_id", sa.String(1024), nullable=False),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("dependencies", sa.JSON(), nullable=False),
        sa.Column("create_before_destroy", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    state_meta = op.create_table(
        "state_meta",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.String(1024), nullable=False),
    )
    op.bulk_insert(state_meta, [{"key": "schema_version", "value": "1"}])


def downgrade() -> None:
    op.drop_table("state_meta")
    op.drop_table("state_record")
