"""Initial schema: kv_store

Revision ID: 0001
Revises: None
Create Date: 2026-10-19 00:00:00
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def _table_exists(name: str) -> bool:
    conn = op.get_bind()
    result = conn.execute(
        sa.text("SELECT 1 FROM sqlite_master WHERE type='table' AND name=:n"),
        {"n": name},
    )
    return result.fetchone() is not None


def upgrade() -> None:
    # Guarded so a DB first created by SQLModel.metadata.create_all() can be upgraded.
    if not _table_exists("kv_store"):
        op.create_table(
            "kv_store",
            sa.Column("namespace", sa.String(), primary_key=True),
            sa.Column("key", sa.String(), primary_key=True),
            sa.Column("value", sa.String(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )


def downgrade() -> None:
    op.drop_table("kv_store")
