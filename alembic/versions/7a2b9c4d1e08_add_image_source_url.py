"""add images.source_url for imported image dedupe

Revision ID: 7a2b9c4d1e08
Revises: 4c1d2e3f5a60
Create Date: 2026-10-18 12:00:00.000000
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7a2b9c4d1e08"
down_revision: str | Sequence[str] | None = "4c1d2e3f5a60"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    with op.batch_alter_table("images") as batch_op:
        batch_op.add_column(sa.Column("source_url", sa.Text(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("images") as batch_op:
        batch_op.drop_column("source_url")
