"""Initial schema: live entities, audit events and archive entries.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _id_column(name: str = "id", *args, **kwargs) -> sa.Column:
    return sa.Column(name, sa.String(length=36), *args, **kwargs)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    json_type = postgresql.JSONB if is_postgres else sa.JSON
    money_type = sa.Numeric(18, 2)

    task_status = sa.Enum("todo", "in_progress", "done", name="task_status")
    task_priority = sa.Enum("none", "low", "medium", "high", name="task_priority")
    transaction_type = sa.Enum("income", "expense", name="transaction_type")

    op.create_table(
        "notes",
        _id_column(primary_key=True),
        _id_column("owner_id", nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        _id_column("group_id"),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_notes_owner_archived", "notes", ["owner_id", "is_archived"])

    op.create_table(
        "tasks",
        _id_column(primary_key=True),
        _id_column("owner_id", nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("due_date", sa.DateTime(timezone=True)),
        sa.Column("color", sa.String(length=20)),
        sa.Column("status", task_status, nullable=False),
        sa.Column("priority", task_priority, nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_tasks_owner_archived", "tasks", ["owner_id", "is_archived"])

    op.create_table(
        "task_subtasks",
        _id_column(primary_key=True),
        _id_column("task_id", sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("is_done", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "task_recurrences",
        _id_column(primary_key=True),
        _id_column("task_id", sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("rule", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("last_occurrence", sa.DateTime(timezone=True)),
        sa.Column("next_occurrence", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "transactions",
        _id_column(primary_key=True),
        _id_column("owner_id", nullable=False),
        sa.Column("amount", money_type, nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        _id_column("category_id"),
        _id_column("goal_id"),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_transactions_owner_archived", "transactions", ["owner_id", "is_archived"])
    op.create_index("ix_transactions_goal_id", "transactions", ["goal_id"])

    op.create_table(
        "budgets",
        _id_column(primary_key=True),
        _id_column("owner_id", nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("limit", money_type, nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        _id_column("category_id"),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_budgets_owner_archived", "budgets", ["owner_id", "is_archived"])

    op.create_table(
        "financial_goals",
        _id_column(primary_key=True),
        _id_column("owner_id", nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_amount", money_type, nullable=False),
        sa.Column("current_amount", money_type, nullable=False, server_default="0"),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("deadline", sa.Date()),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_financial_goals_owner_archived", "financial_goals", ["owner_id", "is_archived"])

    op.create_table(
        "audit_events",
        _id_column("event_id", primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("event_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("actor_type", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.String(length=255)),
        sa.Column("owner_id", sa.String(length=255)),
        sa.Column("target_type", sa.String(length=50), nullable=False),
        sa.Column("target_ids", json_type, nullable=False),
        sa.Column("count_affected", sa.Integer()),
        sa.Column("reason", sa.Text()),
        sa.Column("request_id", sa.String(length=255)),
        sa.Column("metadata", json_type),
    )
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_owner_id", "audit_events", ["owner_id"])

    op.create_table(
        "archive_entries",
        _id_column(primary_key=True),
        _id_column("owner_id", nullable=False),
        sa.Column("entity_kind", sa.String(length=20), nullable=False),
        _id_column("entity_id", nullable=False),
        sa.Column("snapshot", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=500)),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "owner_id",
            "entity_kind",
            "entity_id",
            name="uq_archive_entries_owner_entity",
        ),
    )
    op.create_index("ix_archive_entries_owner_id", "archive_entries", ["owner_id"])
    op.create_index("ix_archive_entries_entity_kind", "archive_entries", ["entity_kind"])
    op.create_index("ix_archive_entries_archived_at", "archive_entries", ["archived_at"])
    op.create_index("ix_archive_entries_entity", "archive_entries", ["entity_kind", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_archive_entries_entity", table_name="archive_entries")
    op.drop_index("ix_archive_entries_archived_at", table_name="archive_entries")
    op.drop_index("ix_archive_entries_entity_kind", table_name="archive_entries")
    op.drop_index("ix_archive_entries_owner_id", table_name="archive_entries")
    op.drop_table("archive_entries")

    op.drop_index("ix_audit_events_owner_id", table_name="audit_events")
    op.drop_index("ix_audit_events_event_type", table_name="audit_events")
    op.drop_index("ix_audit_events_created_at", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("ix_financial_goals_owner_archived", table_name="financial_goals")
    op.drop_table("financial_goals")
    op.drop_index("ix_budgets_owner_archived", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_transactions_goal_id", table_name="transactions")
    op.drop_index("ix_transactions_owner_archived", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("task_recurrences")
    op.drop_table("task_subtasks")
    op.drop_index("ix_tasks_owner_archived", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_notes_owner_archived", table_name="notes")
    op.drop_table("notes")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in ("transaction_type", "task_priority", "task_status"):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
