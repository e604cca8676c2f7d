"""
Archive, restore, purge and listing of archived entities.

Every write operation runs as a single unit of work: the live entity mutation,
the archive entry change and the audit event commit together or not at all.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

import core.config as config
from core.audit import list_archive_events
from core.audit_constants import (
    EVENT_ARCHIVE_CREATED,
    EVENT_ARCHIVE_PURGED,
    EVENT_ARCHIVE_RESTORED,
)
from core.context import RequestContext
from core.db import DB
from core.errors import ArchiveConflictError, NotFoundError, SnapshotDecodeError
from core.models import ArchiveEntry
from core.services.archive_shared import (
    ARCHIVE_PAGE_SIZE_DEFAULT,
    _log_audit_event,
    _serialize_datetime,
    logger,
    service_tool,
)
from core.services.archive_store import (
    build_archive_query,
    delete_entry,
    find_entry_for_entity,
    get_entry,
    insert_entry,
    list_entries,
)
from core.services.entity_gateways import get_gateway, parse_entity_kind
from core.validators import validate_limit, validate_required_text

MAX_ID_LENGTH = 36


def _validate_owner(owner_id: str) -> None:
    validate_required_text(owner_id, "owner_id", 255)


def _validate_id(value: str, field: str) -> None:
    validate_required_text(value, field, MAX_ID_LENGTH)


def _entry_header(entry: ArchiveEntry) -> dict:
    return {
        "id": entry.id,
        "entity_kind": entry.entity_kind,
        "entity_id": entry.entity_id,
        "archived_at": _serialize_datetime(entry.archived_at),
    }


def _serialize_entry(entry: ArchiveEntry) -> dict:
    gateway = get_gateway(entry.entity_kind)
    summary = gateway.summarize(entry.snapshot)
    payload = _entry_header(entry)
    payload.update(
        {
            "title": summary.title,
            "description": summary.description,
            "fields": summary.fields_as_dicts(),
        }
    )
    return payload


# =============================================================================
# Archive
# =============================================================================

@service_tool
def archive_entity(
    owner_id: str,
    entity_kind: str,
    entity_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Archive a live entity.

    Detaches kind-specific dependents, flips the archived flag, captures a
    snapshot of the archived state and records it as an archive entry.
    """
    _validate_owner(owner_id)
    gateway = get_gateway(entity_kind)
    _validate_id(entity_id, "entity_id")

    db = DB.SessionLocal()
    try:
        entity = gateway.fetch_owned(db, owner_id, entity_id)
        if entity is None:
            raise NotFoundError(gateway.kind.value, entity_id)

        existing = find_entry_for_entity(db, gateway.kind, entity_id, owner_id=owner_id)
        if existing is not None:
            return {
                "status": "already_archived",
                "archive_entry_id": existing.id,
                "entity_kind": gateway.kind.value,
                "entity_id": entity_id,
            }

        gateway.detach_schedule(db, entity)
        gateway.mark_archived(db, entity)
        db.flush()
        gateway.cascade_on_archive(db, entity)

        snapshot = gateway.encode(entity)
        summary = gateway.summarize(snapshot)
        entry = insert_entry(
            db,
            ArchiveEntry(
                owner_id=owner_id,
                entity_kind=gateway.kind.value,
                entity_id=entity_id,
                snapshot=snapshot,
                title=summary.title[:500],
                archived_at=datetime.utcnow(),
            ),
        )

        _log_audit_event(
            db,
            event_type=EVENT_ARCHIVE_CREATED,
            owner_id=owner_id,
            target_type="archive_entry",
            target_ids=[entry.id],
            count_affected=1,
            context=context,
            metadata={"entity_kind": gateway.kind.value, "entity_id": entity_id},
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        existing = find_entry_for_entity(db, gateway.kind, entity_id, owner_id=owner_id)
        if existing is None:
            raise ArchiveConflictError(
                f"archiving {gateway.kind.value} {entity_id} violated a constraint"
            ) from exc
        logger.warning(
            "archive_duplicate_rejected",
            extra={"entity_kind": gateway.kind.value, "entity_id": entity_id},
        )
        return {
            "status": "already_archived",
            "archive_entry_id": existing.id,
            "entity_kind": gateway.kind.value,
            "entity_id": entity_id,
        }
    except Exception:
        db.rollback()
        raise
    else:
        logger.info(
            "entity_archived",
            extra={
                "entity_kind": gateway.kind.value,
                "entity_id": entity_id,
                "archive_entry_id": entry.id,
            },
        )
        return {
            "status": "archived",
            "archive_entry_id": entry.id,
            "entity_kind": gateway.kind.value,
            "entity_id": entity_id,
            "archived_at": _serialize_datetime(entry.archived_at),
        }
    finally:
        db.close()


# =============================================================================
# Restore
# =============================================================================

@service_tool
def restore_archived_entity(
    owner_id: str,
    archive_entry_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Restore an archived entity and drop its archive entry.

    If the live row still exists only its archived flag is cleared; otherwise
    the row is rebuilt from the stored snapshot.
    """
    _validate_owner(owner_id)
    _validate_id(archive_entry_id, "archive_entry_id")

    db = DB.SessionLocal()
    try:
        entry = get_entry(db, owner_id, archive_entry_id)
        if entry is None:
            raise NotFoundError("archive_entry", archive_entry_id)
        gateway = get_gateway(entry.entity_kind)
        entity_id = entry.entity_id

        entity = gateway.fetch_owned(db, owner_id, entity_id)
        if entity is not None:
            branch = "soft"
            gateway.mark_restored(db, entity)
        else:
            branch = "recreated"
            entity = gateway.decode(entry.snapshot)
            entity.owner_id = owner_id
            gateway.mark_restored(db, entity)
            gateway.insert(db, entity)

        db.flush()
        gateway.cascade_on_restore(db, entity)
        delete_entry(db, entry)

        _log_audit_event(
            db,
            event_type=EVENT_ARCHIVE_RESTORED,
            owner_id=owner_id,
            target_type="archive_entry",
            target_ids=[archive_entry_id],
            count_affected=1,
            context=context,
            metadata={
                "entity_kind": gateway.kind.value,
                "entity_id": entity_id,
                "branch": branch,
            },
        )
        db.commit()
    except SnapshotDecodeError:
        db.rollback()
        logger.error(
            "restore_decode_failed",
            extra={"archive_entry_id": archive_entry_id},
        )
        raise
    except IntegrityError as exc:
        db.rollback()
        raise ArchiveConflictError(
            f"restored {gateway.kind.value} {entity_id} collides with an existing row"
        ) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info(
        "entity_restored",
        extra={
            "entity_kind": gateway.kind.value,
            "entity_id": entity_id,
            "archive_entry_id": archive_entry_id,
            "branch": branch,
        },
    )
    return {
        "status": "restored",
        "archive_entry_id": archive_entry_id,
        "entity_kind": gateway.kind.value,
        "entity_id": entity_id,
        "branch": branch,
    }


# =============================================================================
# Permanent delete
# =============================================================================

@service_tool
def permanently_delete_archive_entry(
    owner_id: str,
    archive_entry_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """
    Purge an archive entry. Any live entity with the same id is left as is.
    """
    _validate_owner(owner_id)
    _validate_id(archive_entry_id, "archive_entry_id")

    db = DB.SessionLocal()
    try:
        entry = get_entry(db, owner_id, archive_entry_id)
        if entry is None:
            raise NotFoundError("archive_entry", archive_entry_id)
        entity_kind = entry.entity_kind
        entity_id = entry.entity_id
        delete_entry(db, entry)
        _log_audit_event(
            db,
            event_type=EVENT_ARCHIVE_PURGED,
            owner_id=owner_id,
            target_type="archive_entry",
            target_ids=[archive_entry_id],
            count_affected=1,
            context=context,
            metadata={"entity_kind": entity_kind, "entity_id": entity_id},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info(
        "archive_entry_purged",
        extra={"entity_kind": entity_kind, "archive_entry_id": archive_entry_id},
    )
    return {
        "status": "deleted",
        "archive_entry_id": archive_entry_id,
        "entity_kind": entity_kind,
        "entity_id": entity_id,
    }


# =============================================================================
# Read operations
# =============================================================================

@service_tool
def list_archived_entities(
    owner_id: str,
    entity_kind: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = ARCHIVE_PAGE_SIZE_DEFAULT,
    sort_by: Optional[str] = "archived_at",
    sort_dir: Optional[str] = "desc",
) -> dict:
    """
    List the owner's archive entries with display summaries.
    """
    _validate_owner(owner_id)
    kind = parse_entity_kind(entity_kind) if entity_kind else None
    query = build_archive_query(
        entity_kind=kind,
        search=search,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )

    db = DB.SessionLocal()
    try:
        rows, total = list_entries(db, owner_id, query)
        items = [_serialize_entry(row) for row in rows]
    finally:
        db.close()

    return {
        "status": "ok",
        "items": items,
        "total_count": total,
        "page": query.page,
        "page_size": query.page_size,
        "total_pages": math.ceil(total / query.page_size) if total else 0,
    }


@service_tool
def get_archived_entity_detail(owner_id: str, archive_entry_id: str) -> dict:
    _validate_owner(owner_id)
    _validate_id(archive_entry_id, "archive_entry_id")

    db = DB.SessionLocal()
    try:
        entry = get_entry(db, owner_id, archive_entry_id)
        if entry is None:
            raise NotFoundError("archive_entry", archive_entry_id)
        payload = _serialize_entry(entry)
        payload["snapshot"] = entry.snapshot
    finally:
        db.close()

    payload["status"] = "ok"
    return payload


@service_tool
def list_archive_audit_events(
    owner_id: str,
    limit: int = config.AUDIT_LIMIT_DEFAULT,
    cursor: Optional[str] = None,
) -> dict:
    _validate_owner(owner_id)
    validate_limit(limit, "limit", config.AUDIT_LIMIT_MAX)

    db = DB.SessionLocal()
    try:
        return list_archive_events(db, owner_id=owner_id, limit=limit, cursor=cursor)
    finally:
        db.close()


__all__ = [
    "archive_entity",
    "restore_archived_entity",
    "permanently_delete_archive_entry",
    "list_archived_entities",
    "get_archived_entity_detail",
    "list_archive_audit_events",
]
