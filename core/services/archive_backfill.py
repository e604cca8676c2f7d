"""
One-shot backfill of archive entries for entities flagged archived before the
archive entry table existed.
"""

from __future__ import annotations

from typing import Optional

from core.audit_constants import EVENT_ARCHIVE_BACKFILLED
from core.context import RequestContext
from core.db import DB
from core.models import ArchiveEntry
from core.services.archive_shared import _log_audit_event, logger, service_tool
from core.services.archive_store import find_entry_for_entity, insert_entry
from core.services.entity_gateways import ENTITY_GATEWAYS


@service_tool
def run_archive_backfill(context: Optional[RequestContext] = None) -> dict:
    """
    Create the missing archive entry for every live entity whose archived flag
    is set. Entities that already have an entry are left alone, so repeated
    runs are no-ops.
    """
    created_by_kind: dict[str, int] = {}
    created_ids: list[str] = []
    scanned = 0

    db = DB.SessionLocal()
    try:
        for kind, gateway in ENTITY_GATEWAYS.items():
            created = 0
            for entity in gateway.iter_archived(db):
                scanned += 1
                if find_entry_for_entity(db, kind, entity.id) is not None:
                    continue
                snapshot = gateway.encode(entity)
                entry = insert_entry(
                    db,
                    ArchiveEntry(
                        owner_id=entity.owner_id,
                        entity_kind=kind.value,
                        entity_id=entity.id,
                        snapshot=snapshot,
                        title=gateway.summarize(snapshot).title[:500],
                        archived_at=gateway.archival_timestamp(entity),
                    ),
                )
                created_ids.append(entry.id)
                created += 1
            created_by_kind[kind.value] = created

        _log_audit_event(
            db,
            event_type=EVENT_ARCHIVE_BACKFILLED,
            owner_id=context.auth.user_id if context and context.auth else None,
            target_type="archive_entry",
            target_ids=created_ids,
            count_affected=len(created_ids),
            context=context,
            metadata={"created_by_kind": created_by_kind},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info(
        "archive_backfill_completed",
        extra={"created_count": len(created_ids), "scanned_count": scanned},
    )
    return {
        "status": "ok",
        "created_count": len(created_ids),
        "created_by_kind": created_by_kind,
        "scanned_count": scanned,
    }
