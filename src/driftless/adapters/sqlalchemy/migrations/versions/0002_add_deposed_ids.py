"""Track deposed provider ids left by create-before-destroy replacements.

Revision ID: 0002
Revises: 0001
Create Date: 2026-05-19 16:40:03
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

_state_meta = sa.table("state_meta", sa.column("key", sa.String), sa.column("value", sa.String))


def _set_schema_version(value: str) -> None:
    op.execute(
        _state_meta.update().where(_state_meta.c.key == "schema_version").values(value=value)
    )


def upgrade() -> None:
    with op.batch_alter_table("state_record") as batch_op:
        batch_op.add_column(
            sa.Column("deposed", sa.JSON(), nullable=False, server_default=sa.text("'[]'"))
        )
    _set_schema_version("2")


def downgrade() -> None:
    with op.batch_alter_table("state_record") as batch_op:
        batch_op.drop_column("deposed")
    _set_schema_version("1")
