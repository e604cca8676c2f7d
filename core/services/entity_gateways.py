"""
Per-kind adapters over the live entity tables.

The archive engine never branches on entity kind itself; everything kind
specific (lookup, archived flag handling, schedule detach, goal balance
recompute) lives on the gateway registered for that kind.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional, Union

from sqlalchemy import func

from core.errors import UnsupportedEntityKind
from core.models import (
    Budget,
    EntityKind,
    FinancialGoal,
    Note,
    Tag,
    TaskItem,
    Transaction,
)
from core.services.archive_shared import logger
from core.services.metadata_extractor import ArchiveSummary, summarize_snapshot
from core.services.snapshot_codec import decode_entity, encode_entity

KIND_ALIASES = {
    "financialgoal": EntityKind.goal,
    "goals": EntityKind.goal,
    "notes": EntityKind.note,
    "tasks": EntityKind.task,
    "transactions": EntityKind.transaction,
    "budgets": EntityKind.budget,
}


def parse_entity_kind(value: Union[EntityKind, str, None]) -> EntityKind:
    if isinstance(value, EntityKind):
        return value
    if not isinstance(value, str) or not value.strip():
        raise UnsupportedEntityKind(value)
    normalized = value.strip().lower().replace("_", "").replace("-", "")
    for kind in EntityKind:
        if kind.value == normalized:
            return kind
    if normalized in KIND_ALIASES:
        return KIND_ALIASES[normalized]
    raise UnsupportedEntityKind(value)


def recompute_goal_amount(db, owner_id: str, goal_id: Optional[str]) -> Optional[FinancialGoal]:
    """Set a goal's current amount to the sum of its owner's live linked transactions."""
    if not goal_id:
        return None
    goal = (
        db.query(FinancialGoal)
        .filter(FinancialGoal.id == goal_id, FinancialGoal.owner_id == owner_id)
        .first()
    )
    if goal is None:
        return None
    db.flush()
    total = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0))
        .filter(
            Transaction.owner_id == owner_id,
            Transaction.goal_id == goal_id,
            Transaction.is_archived.is_(False),
        )
        .scalar()
    )
    goal.current_amount = Decimal(str(total))
    goal.updated_at = datetime.utcnow()
    return goal


def relink_tags(db, owner_id: str, tags) -> list[Tag]:
    """
    Swap snapshot tags for the owner's live tag rows.

    A tag is matched by id, then by name. One that no longer exists is
    recreated under the owner; one whose id now belongs to another owner is
    dropped from the link list.
    """
    linked: list[Tag] = []
    seen: set[str] = set()
    for tag in tags:
        live = db.get(Tag, tag.id)
        if live is not None and live.owner_id != owner_id:
            logger.warning("restore_tag_foreign", extra={"tag_id": tag.id})
            continue
        if live is None:
            live = (
                db.query(Tag)
                .filter(Tag.owner_id == owner_id, Tag.name == tag.name)
                .first()
            )
        if live is None:
            live = Tag(
                id=tag.id,
                owner_id=owner_id,
                name=tag.name,
                color=tag.color,
                created_at=tag.created_at,
            )
        if live.id in seen:
            continue
        seen.add(live.id)
        linked.append(live)
    return linked


# =============================================================================
# Gateways
# =============================================================================

class EntityGateway:
    kind: EntityKind
    model: type

    def fetch_owned(self, db, owner_id: str, entity_id: str):
        return (
            db.query(self.model)
            .filter(self.model.id == entity_id, self.model.owner_id == owner_id)
            .first()
        )

    def mark_archived(self, db, entity) -> None:
        entity.is_archived = True
        entity.updated_at = datetime.utcnow()

    def mark_restored(self, db, entity) -> None:
        entity.is_archived = False
        entity.updated_at = datetime.utcnow()

    def detach_schedule(self, db, entity) -> None:
        return None

    def cascade_on_archive(self, db, entity) -> None:
        return None

    def cascade_on_restore(self, db, entity) -> None:
        return None

    def insert(self, db, entity) -> None:
        if getattr(entity, "tags", None):
            entity.tags = relink_tags(db, entity.owner_id, entity.tags)
        db.add(entity)
        db.flush()

    def iter_archived(self, db) -> Iterator:
        query = db.query(self.model).filter(self.model.is_archived.is_(True))
        return iter(query.order_by(self.model.id).all())

    def archival_timestamp(self, entity) -> datetime:
        stamped = getattr(entity, "archived_at", None)
        return stamped or entity.updated_at or entity.created_at or datetime.utcnow()

    def encode(self, entity) -> str:
        return encode_entity(entity)

    def decode(self, snapshot: Union[str, bytes]):
        return decode_entity(snapshot, self.kind, self.model)

    def summarize(self, snapshot: Union[str, bytes, None]) -> ArchiveSummary:
        return summarize_snapshot(self.kind, snapshot)


class NoteGateway(EntityGateway):
    kind = EntityKind.note
    model = Note


class TaskGateway(EntityGateway):
    kind = EntityKind.task
    model = TaskItem

    def detach_schedule(self, db, entity) -> None:
        # delete-orphan removes the recurrence row on flush
        if entity.recurrence is not None:
            entity.recurrence = None
            db.flush()


class TransactionGateway(EntityGateway):
    kind = EntityKind.transaction
    model = Transaction

    def cascade_on_archive(self, db, entity) -> None:
        recompute_goal_amount(db, entity.owner_id, entity.goal_id)

    def cascade_on_restore(self, db, entity) -> None:
        recompute_goal_amount(db, entity.owner_id, entity.goal_id)


class BudgetGateway(EntityGateway):
    kind = EntityKind.budget
    model = Budget

    def mark_archived(self, db, entity) -> None:
        super().mark_archived(db, entity)
        entity.archived_at = entity.updated_at

    def mark_restored(self, db, entity) -> None:
        super().mark_restored(db, entity)
        entity.archived_at = None


class GoalGateway(EntityGateway):
    kind = EntityKind.goal
    model = FinancialGoal


ENTITY_GATEWAYS: dict[EntityKind, EntityGateway] = {}


def register_gateway(gateway: EntityGateway) -> None:
    ENTITY_GATEWAYS[gateway.kind] = gateway


def get_gateway(kind: Union[EntityKind, str]) -> EntityGateway:
    parsed = parse_entity_kind(kind)
    gateway = ENTITY_GATEWAYS.get(parsed)
    if gateway is None:
        raise UnsupportedEntityKind(kind)
    return gateway


for _gateway in (NoteGateway(), TaskGateway(), TransactionGateway(), BudgetGateway(), GoalGateway()):
    register_gateway(_gateway)


__all__ = [
    "EntityGateway",
    "ENTITY_GATEWAYS",
    "get_gateway",
    "parse_entity_kind",
    "recompute_goal_amount",
    "register_gateway",
    "relink_tags",
]
