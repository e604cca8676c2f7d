import json
import os
from datetime import date, datetime
from decimal import Decimal

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

from sqlalchemy.exc import IntegrityError

from core.audit_constants import EVENT_ARCHIVE_CREATED, EVENT_ARCHIVE_PURGED, EVENT_ARCHIVE_RESTORED
from core.context import AuthContext, RequestContext
from core.db import DB
from core.errors import SnapshotDecodeError, ValidationIssue
from core.models import (
    ArchiveEntry,
    AuditEvent,
    Budget,
    FinancialGoal,
    Note,
    Tag,
    TaskItem,
    TaskRecurrence,
    TaskSubtask,
    Transaction,
    TransactionType,
)
from core.services import archive_engine, archive_service

from factories import (
    OTHER_OWNER,
    OWNER,
    make_budget,
    make_goal,
    make_note,
    make_tag,
    make_task,
    make_transaction,
    tag_entity,
)


def _fetch(model, entity_id):
    db = DB.SessionLocal()
    try:
        row = db.get(model, entity_id)
        if row is not None:
            db.expunge(row)
        return row
    finally:
        db.close()


def _count(model, *criteria) -> int:
    db = DB.SessionLocal()
    try:
        return db.query(model).filter(*criteria).count()
    finally:
        db.close()


def _delete_live(model, entity_id) -> None:
    db = DB.SessionLocal()
    try:
        db.delete(db.get(model, entity_id))
        db.commit()
    finally:
        db.close()


def _entries_for(entity_id) -> int:
    return _count(ArchiveEntry, ArchiveEntry.entity_id == entity_id)


def _tag_names(model, entity_id) -> list[str]:
    db = DB.SessionLocal()
    try:
        return [tag.name for tag in db.get(model, entity_id).tags]
    finally:
        db.close()


def _store_entry(entity_kind, entity_id, snapshot) -> str:
    db = DB.SessionLocal()
    try:
        entry = ArchiveEntry(
            owner_id=OWNER,
            entity_kind=entity_kind,
            entity_id=entity_id,
            snapshot=snapshot,
        )
        db.add(entry)
        db.commit()
        return entry.id
    finally:
        db.close()


# =============================================================================
# Archive + restore
# =============================================================================

def test_note_trip_scenario(server_db):
    make_note("N1", title="Trip")

    archived = archive_service.archive_entity(OWNER, "note", "N1")
    assert archived["status"] == "archived"
    assert _entries_for("N1") == 1
    assert _fetch(Note, "N1").is_archived is True

    listing = archive_service.list_archived_entities(OWNER)
    assert listing["total_count"] == 1
    assert listing["items"][0]["entity_kind"] == "note"
    assert listing["items"][0]["entity_id"] == "N1"

    detail = archive_service.get_archived_entity_detail(OWNER, archived["archive_entry_id"])
    assert detail["status"] == "ok"
    assert detail["title"] == "Trip"
    assert json.loads(detail["snapshot"])["id"] == "N1"

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])
    assert restored["status"] == "restored"
    assert restored["branch"] == "soft"
    assert _fetch(Note, "N1").is_archived is False
    assert _entries_for("N1") == 0


def test_restore_recreates_deleted_row_from_snapshot(server_db):
    make_note("N2", title="Recipes", body="Flour, water, salt", group_id="grp-7")
    archived = archive_service.archive_entity(OWNER, "Note", "N2")
    _delete_live(Note, "N2")

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert restored["branch"] == "recreated"
    note = _fetch(Note, "N2")
    assert note.title == "Recipes"
    assert note.body == "Flour, water, salt"
    assert note.group_id == "grp-7"
    assert note.owner_id == OWNER
    assert note.is_archived is False
    assert _entries_for("N2") == 0


def test_task_archive_detaches_recurrence_and_keeps_subtasks(server_db):
    make_task("T1", with_recurrence=True, subtasks=("Buy soil", "Repot"))

    archived = archive_service.archive_entity(OWNER, "task", "T1")

    assert _count(TaskRecurrence, TaskRecurrence.task_id == "T1") == 0
    snapshot = json.loads(
        archive_service.get_archived_entity_detail(OWNER, archived["archive_entry_id"])["snapshot"]
    )
    assert snapshot["recurrence"] is None

    archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert _count(TaskRecurrence, TaskRecurrence.task_id == "T1") == 0
    assert _count(TaskSubtask, TaskSubtask.task_id == "T1") == 2


def test_task_recreated_with_children(server_db):
    make_task("T2", subtasks=("One", "Two"))
    archived = archive_service.archive_entity(OWNER, "task", "T2")
    _delete_live(TaskItem, "T2")
    assert _count(TaskSubtask, TaskSubtask.task_id == "T2") == 0

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert restored["branch"] == "recreated"
    task = _fetch(TaskItem, "T2")
    assert task.title == "Water plants"
    assert task.due_date == datetime(2026, 3, 5, 9, 30)
    assert task.is_archived is False
    assert _count(TaskSubtask, TaskSubtask.task_id == "T2") == 2


def test_transaction_archive_recomputes_goal(server_db):
    make_goal("G1", current_amount="150")
    make_transaction("X1", "100.00", goal_id="G1")
    make_transaction("X2", "50.00", goal_id="G1")

    archived = archive_service.archive_entity(OWNER, "transaction", "X1")
    assert _fetch(FinancialGoal, "G1").current_amount == Decimal("50")

    archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])
    assert _fetch(FinancialGoal, "G1").current_amount == Decimal("150")


def test_budget_archived_at_follows_flag(server_db):
    make_budget("B1")

    archived = archive_service.archive_entity(OWNER, "budget", "B1")
    assert _fetch(Budget, "B1").archived_at is not None

    archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])
    budget = _fetch(Budget, "B1")
    assert budget.archived_at is None
    assert budget.is_archived is False


def test_goal_round_trip_preserves_amounts(server_db):
    make_goal("G5", current_amount="321.40")
    archived = archive_service.archive_entity(OWNER, "financial_goal", "G5")
    _delete_live(FinancialGoal, "G5")

    archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    goal = _fetch(FinancialGoal, "G5")
    assert goal.current_amount == Decimal("321.40")
    assert goal.target_amount == Decimal("1000.00")


def test_transaction_recreated_from_snapshot(server_db):
    make_goal("G2")
    make_transaction("X3", "75.25", goal_id="G2")
    archived = archive_service.archive_entity(OWNER, "transaction", "X3")
    assert _fetch(FinancialGoal, "G2").current_amount == Decimal("0")
    _delete_live(Transaction, "X3")

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert restored["branch"] == "recreated"
    row = _fetch(Transaction, "X3")
    assert row.amount == Decimal("75.25")
    assert row.type == TransactionType.income
    assert row.currency_code == "EUR"
    assert row.date == datetime(2026, 2, 1, 12, 0)
    assert row.goal_id == "G2"
    assert row.is_archived is False
    assert _fetch(FinancialGoal, "G2").current_amount == Decimal("75.25")


def test_budget_recreated_from_snapshot(server_db):
    make_budget("B2")
    archived = archive_service.archive_entity(OWNER, "budget", "B2")
    _delete_live(Budget, "B2")

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert restored["branch"] == "recreated"
    budget = _fetch(Budget, "B2")
    assert budget.period_start == date(2026, 2, 1)
    assert budget.period_end == date(2026, 2, 28)
    assert budget.limit == Decimal("450.00")
    assert budget.archived_at is None
    assert budget.is_archived is False


def test_note_tags_come_back_on_recreate(server_db):
    make_note("N12")
    make_tag("TG1", "travel")
    make_tag("TG2", "family")
    tag_entity(Note, "N12", "TG1", "TG2")
    archived = archive_service.archive_entity(OWNER, "note", "N12")
    snapshot = json.loads(
        archive_service.get_archived_entity_detail(OWNER, archived["archive_entry_id"])["snapshot"]
    )
    assert [tag["name"] for tag in snapshot["tags"]] == ["family", "travel"]
    _delete_live(Note, "N12")
    _delete_live(Tag, "TG2")

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert restored["branch"] == "recreated"
    assert _tag_names(Note, "N12") == ["family", "travel"]
    assert _count(Tag, Tag.owner_id == OWNER) == 2
    assert _fetch(Tag, "TG2").owner_id == OWNER


def test_recreate_skips_tags_now_owned_by_someone_else(server_db):
    make_task("T3")
    make_tag("TG3", "garden")
    make_tag("TG4", "chores")
    tag_entity(TaskItem, "T3", "TG3", "TG4")
    archived = archive_service.archive_entity(OWNER, "task", "T3")
    _delete_live(TaskItem, "T3")
    _delete_live(Tag, "TG4")
    make_tag("TG4", "chores", owner_id=OTHER_OWNER)

    archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert _tag_names(TaskItem, "T3") == ["garden"]


def test_soft_restore_keeps_transaction_tags(server_db):
    make_transaction("X4", "5.00")
    make_tag("TG5", "coffee")
    tag_entity(Transaction, "X4", "TG5")
    archived = archive_service.archive_entity(OWNER, "transaction", "X4")

    restored = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert restored["branch"] == "soft"
    assert _tag_names(Transaction, "X4") == ["coffee"]


# =============================================================================
# Purge
# =============================================================================

def test_permanent_delete_leaves_live_entity(server_db):
    make_note("N3")
    make_note("N4", title="Other")
    first = archive_service.archive_entity(OWNER, "note", "N3")
    archive_service.archive_entity(OWNER, "note", "N4")

    result = archive_service.permanently_delete_archive_entry(OWNER, first["archive_entry_id"])

    assert result["status"] == "deleted"
    assert _count(ArchiveEntry) == 1
    note = _fetch(Note, "N3")
    assert note is not None
    assert note.is_archived is True


# =============================================================================
# Errors
# =============================================================================

def test_missing_or_foreign_entity_is_not_found(server_db):
    make_note("N5", owner_id=OTHER_OWNER)

    assert archive_service.archive_entity(OWNER, "note", "nope")["error_type"] == "not_found"
    assert archive_service.archive_entity(OWNER, "note", "N5")["error_type"] == "not_found"
    assert archive_service.restore_archived_entity(OWNER, "missing")["error_type"] == "not_found"
    assert archive_service.get_archived_entity_detail(OWNER, "missing")["error_type"] == "not_found"


def test_foreign_entry_cannot_be_restored_or_purged(server_db):
    make_note("N6")
    archived = archive_service.archive_entity(OWNER, "note", "N6")
    entry_id = archived["archive_entry_id"]

    assert archive_service.restore_archived_entity(OTHER_OWNER, entry_id)["error_type"] == "not_found"
    assert archive_service.permanently_delete_archive_entry(OTHER_OWNER, entry_id)["error_type"] == "not_found"
    assert _entries_for("N6") == 1


def test_unknown_kind_is_unsupported(server_db):
    result = archive_service.archive_entity(OWNER, "calendar_event", "E1")

    assert result["status"] == "error"
    assert result["error_type"] == "unsupported"


def test_bad_list_parameters_are_validation_errors(server_db):
    result = archive_service.list_archived_entities(OWNER, page=0)

    assert result["error_type"] == "validation_error"
    assert result["field"] == "page"


def test_second_archive_reports_already_archived(server_db):
    make_note("N7")
    first = archive_service.archive_entity(OWNER, "note", "N7")

    second = archive_service.archive_entity(OWNER, "note", "N7")

    assert second["status"] == "already_archived"
    assert second["archive_entry_id"] == first["archive_entry_id"]
    assert _entries_for("N7") == 1


def test_duplicate_entry_rejected_by_constraint(db_session):
    for _ in range(2):
        db_session.add(
            ArchiveEntry(owner_id=OWNER, entity_kind="note", entity_id="N8", snapshot='{"id": "N8"}')
        )
    with pytest.raises(IntegrityError):
        db_session.commit()


def test_decode_failure_leaves_entry_intact(server_db):
    entry_id = _store_entry("note", "GONE", "{not json")

    with pytest.raises(SnapshotDecodeError):
        archive_service.restore_archived_entity(OWNER, entry_id)

    assert _entries_for("GONE") == 1
    assert _fetch(Note, "GONE") is None


def test_restore_collision_is_conflict(server_db):
    make_note("N9")
    archived = archive_service.archive_entity(OWNER, "note", "N9")
    _delete_live(Note, "N9")
    make_note("N9", owner_id=OTHER_OWNER, title="Someone else")

    result = archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"])

    assert result["error_type"] == "conflict"
    assert _entries_for("N9") == 1


def test_restore_rejects_snapshot_missing_required_column(server_db):
    entry_id = _store_entry(
        "transaction",
        "X9",
        json.dumps({"id": "X9", "currency_code": "EUR", "type": "income"}),
    )

    with pytest.raises(SnapshotDecodeError, match="amount is missing"):
        archive_service.restore_archived_entity(OWNER, entry_id)

    assert _entries_for("X9") == 1
    assert _fetch(Transaction, "X9") is None


def test_archive_constraint_failure_without_entry_is_conflict(server_db, monkeypatch):
    make_note("N13")

    def _failing_insert(db, entry):
        raise IntegrityError("INSERT INTO archive_entries", {}, Exception("constraint failed"))

    monkeypatch.setattr(archive_engine, "insert_entry", _failing_insert)

    result = archive_service.archive_entity(OWNER, "note", "N13")

    assert result["status"] == "error"
    assert result["error_type"] == "conflict"
    assert _entries_for("N13") == 0
    assert _fetch(Note, "N13").is_archived is False


def test_snapshot_is_write_once(server_db, db_session):
    make_note("N10")
    archived = archive_service.archive_entity(OWNER, "note", "N10")
    entry = db_session.get(ArchiveEntry, archived["archive_entry_id"])

    entry.snapshot = '{"id": "N10", "title": "tampered"}'
    with pytest.raises(ValidationIssue):
        db_session.commit()


# =============================================================================
# Audit
# =============================================================================

def test_operations_write_metadata_only_audit_events(server_db):
    context = RequestContext(auth=AuthContext(user_id=OWNER, actor="user"), request_id="req-42")
    make_note("N11", title="Private diary", body="secret words")

    archived = archive_service.archive_entity(OWNER, "note", "N11", context=context)
    archive_service.restore_archived_entity(OWNER, archived["archive_entry_id"], context=context)
    again = archive_service.archive_entity(OWNER, "note", "N11", context=context)
    archive_service.permanently_delete_archive_entry(OWNER, again["archive_entry_id"], context=context)

    events = archive_service.list_archive_audit_events(OWNER)["events"]
    assert [event["event_type"] for event in events].count(EVENT_ARCHIVE_CREATED) == 2
    assert EVENT_ARCHIVE_RESTORED in {event["event_type"] for event in events}
    assert EVENT_ARCHIVE_PURGED in {event["event_type"] for event in events}
    assert all(event["request_id"] == "req-42" for event in events)
    for event in events:
        dumped = json.dumps(event["metadata"])
        assert "secret words" not in dumped
        assert "Private diary" not in dumped
    assert _count(AuditEvent, AuditEvent.owner_id == OWNER) == 4
