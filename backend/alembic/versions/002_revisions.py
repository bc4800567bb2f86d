"""Add revisions table for note history

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "revisions",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("parent_id", sa.String(32), nullable=True),
        sa.Column("item_type", sa.String(32), nullable=False),
        sa.Column("item_id", sa.String(32), nullable=False),
        sa.Column("item_updated_time", sa.DateTime(), nullable=False),
        sa.Column("title_diff", sa.Text(), nullable=False),
        sa.Column("body_diff", sa.Text(), nullable=False),
        sa.Column("metadata_diff", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_revisions_item", "revisions", ["item_type", "item_id", "item_updated_time"], unique=False
    )
    op.create_index(
        op.f("ix_revisions_item_updated_time"), "revisions", ["item_updated_time"], unique=False
    )

    op.create_table(
        "revision_checkpoints",
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("value", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("revision_checkpoints")
    op.drop_index(op.f("ix_revisions_item_updated_time"), table_name="revisions")
    op.drop_index("ix_revisions_item", table_name="revisions")
    op.drop_table("revisions")
