"""
Keepsake Database Models
Archive entries plus the live entity shapes the archive engine operates on.
"""

from datetime import datetime
from enum import Enum as PyEnum
import uuid
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Boolean, Date,
    DateTime, ForeignKey, Index, UniqueConstraint, Enum, JSON, Table, event, inspect
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base

import core.config as config
from core.errors import ValidationIssue

DB_BACKEND_EFFECTIVE = config.DB_BACKEND_EFFECTIVE

JSON_TYPE = JSONB if DB_BACKEND_EFFECTIVE == "postgres" else JSON
ID_TYPE = String(36)
MONEY_TYPE = Numeric(18, 2)


def _uuid_default() -> str:
    return str(uuid.uuid4())

Base = declarative_base()

# =============================================================================
# Enums
# =============================================================================

class EntityKind(str, PyEnum):
    note = "note"
    task = "task"
    transaction = "transaction"
    budget = "budget"
    goal = "goal"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class TaskStatus(str, PyEnum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class TaskPriority(str, PyEnum):
    none = "none"
    low = "low"
    medium = "medium"
    high = "high"


class TransactionType(str, PyEnum):
    income = "income"
    expense = "expense"


# =============================================================================
# Tags
# =============================================================================

class Tag(Base):
    __tablename__ = "tags"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    name = Column(String(100), nullable=False)
    color = Column(String(20))
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_tags_owner_name"),
    )


def _tag_link_table(name: str, entity_table: str, entity_column: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column(entity_column, ID_TYPE, ForeignKey(f"{entity_table}.id", ondelete="CASCADE"), primary_key=True),
        Column("tag_id", ID_TYPE, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )


note_tags = _tag_link_table("note_tags", "notes", "note_id")
task_tags = _tag_link_table("task_tags", "tasks", "task_id")
transaction_tags = _tag_link_table("transaction_tags", "transactions", "transaction_id")


# =============================================================================
# Notes
# =============================================================================

class Note(Base):
    __tablename__ = "notes"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    title = Column(String(500), nullable=False, default="")
    body = Column(Text, nullable=False, default="")  # markdown
    group_id = Column(ID_TYPE)
    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    tags = relationship("Tag", secondary=note_tags, order_by="Tag.name")

    __table_args__ = (
        Index("ix_notes_owner_archived", "owner_id", "is_archived"),
    )


# =============================================================================
# Tasks
# =============================================================================

class TaskItem(Base):
    __tablename__ = "tasks"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    title = Column(String(500), nullable=False, default="")
    description = Column(Text)
    due_date = Column(DateTime(timezone=True))
    color = Column(String(20))
    status = Column(Enum(TaskStatus, name="task_status"), default=TaskStatus.todo, nullable=False)
    priority = Column(Enum(TaskPriority, name="task_priority"), default=TaskPriority.none, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    subtasks = relationship(
        "TaskSubtask",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskSubtask.position",
    )
    recurrence = relationship(
        "TaskRecurrence",
        back_populates="task",
        uselist=False,
        cascade="all, delete-orphan",
    )
    tags = relationship("Tag", secondary=task_tags, order_by="Tag.name")

    __table_args__ = (
        Index("ix_tasks_owner_archived", "owner_id", "is_archived"),
    )


class TaskSubtask(Base):
    __tablename__ = "task_subtasks"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    task_id = Column(ID_TYPE, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False, default="")
    is_done = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    task = relationship("TaskItem", back_populates="subtasks")


class TaskRecurrence(Base):
    __tablename__ = "task_recurrences"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    task_id = Column(ID_TYPE, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True)
    rule = Column(String(255), nullable=False)  # RRULE text
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    last_occurrence = Column(DateTime(timezone=True))
    next_occurrence = Column(DateTime(timezone=True))

    task = relationship("TaskItem", back_populates="recurrence")


# =============================================================================
# Finance
# =============================================================================

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    amount = Column(MONEY_TYPE, nullable=False)
    currency_code = Column(String(3), nullable=False)
    type = Column(Enum(TransactionType, name="transaction_type"), nullable=False)
    category_id = Column(ID_TYPE)
    goal_id = Column(ID_TYPE)
    date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    description = Column(Text)
    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    tags = relationship("Tag", secondary=transaction_tags, order_by="Tag.name")

    __table_args__ = (
        Index("ix_transactions_owner_archived", "owner_id", "is_archived"),
        Index("ix_transactions_goal_id", "goal_id"),
    )


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    title = Column(String(500), nullable=False, default="")
    description = Column(Text)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    limit = Column(MONEY_TYPE, nullable=False)
    currency_code = Column(String(3), nullable=False)
    category_id = Column(ID_TYPE)
    is_archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_budgets_owner_archived", "owner_id", "is_archived"),
    )


class FinancialGoal(Base):
    __tablename__ = "financial_goals"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    title = Column(String(500), nullable=False, default="")
    description = Column(Text)
    target_amount = Column(MONEY_TYPE, nullable=False)
    current_amount = Column(MONEY_TYPE, nullable=False, default=0)
    currency_code = Column(String(3), nullable=False)
    deadline = Column(Date)
    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_financial_goals_owner_archived", "owner_id", "is_archived"),
    )


# =============================================================================
# Audit Events
# =============================================================================

class AuditEvent(Base):
    __tablename__ = "audit_events"

    event_id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    event_type = Column(String(100), nullable=False)
    event_version = Column(Integer, default=1, nullable=False)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255))
    owner_id = Column(String(255))
    target_type = Column(String(50), nullable=False)
    target_ids = Column(JSON_TYPE, nullable=False)
    count_affected = Column(Integer)
    reason = Column(Text)
    request_id = Column(String(255))
    metadata_ = Column("metadata", JSON_TYPE)

    __table_args__ = (
        Index("ix_audit_events_created_at", "created_at"),
        Index("ix_audit_events_event_type", "event_type"),
        Index("ix_audit_events_owner_id", "owner_id"),
    )


# =============================================================================
# Archive Entries
# =============================================================================

class ArchiveEntry(Base):
    __tablename__ = "archive_entries"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    owner_id = Column(ID_TYPE, nullable=False)
    entity_kind = Column(String(20), nullable=False)
    entity_id = Column(ID_TYPE, nullable=False)
    snapshot = Column(Text, nullable=False)  # JSON capture, write-once
    title = Column(String(500))  # extracted at archive time, used for sorting
    archived_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "entity_kind", "entity_id", name="uq_archive_entries_owner_entity"),
        Index("ix_archive_entries_owner_id", "owner_id"),
        Index("ix_archive_entries_entity_kind", "entity_kind"),
        Index("ix_archive_entries_archived_at", "archived_at"),
        Index("ix_archive_entries_entity", "entity_kind", "entity_id"),
    )


# =============================================================================
# Archivable model registry
# =============================================================================

ARCHIVABLE_MODELS = {
    EntityKind.note: Note,
    EntityKind.task: TaskItem,
    EntityKind.transaction: Transaction,
    EntityKind.budget: Budget,
    EntityKind.goal: FinancialGoal,
}


@event.listens_for(ArchiveEntry, "before_update")
def _reject_snapshot_rewrite(mapper, connection, target) -> None:
    if inspect(target).attrs.snapshot.history.has_changes():
        raise ValidationIssue(
            "archive snapshot is immutable once written",
            field="snapshot",
            error_type="immutable",
        )


__all__ = [
    "Base",
    "EntityKind",
    "Tag",
    "TaskStatus",
    "TaskPriority",
    "TransactionType",
    "Note",
    "TaskItem",
    "TaskSubtask",
    "TaskRecurrence",
    "Transaction",
    "Budget",
    "FinancialGoal",
    "AuditEvent",
    "ArchiveEntry",
    "ARCHIVABLE_MODELS",
]
