"""Tags and their links to notes, tasks and transactions.

Revision ID: 0002_tags
Revises: 0001_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_tags"
down_revision = "0001_initial"
branch_labels = None
depends_on = None

LINK_TABLES = (
    ("note_tags", "notes", "note_id"),
    ("task_tags", "tasks", "task_id"),
    ("transaction_tags", "transactions", "transaction_id"),
)


def upgrade() -> None:
    op.create_table(
        "tags",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=20)),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("owner_id", "name", name="uq_tags_owner_name"),
    )

    for table_name, entity_table, entity_column in LINK_TABLES:
        op.create_table(
            table_name,
            sa.Column(
                entity_column,
                sa.String(length=36),
                sa.ForeignKey(f"{entity_table}.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column(
                "tag_id",
                sa.String(length=36),
                sa.ForeignKey("tags.id", ondelete="CASCADE"),
                primary_key=True,
            ),
        )


def downgrade() -> None:
    for table_name, _, _ in reversed(LINK_TABLES):
        op.drop_table(table_name)
    op.drop_table("tags")
