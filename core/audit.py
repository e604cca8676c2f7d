"""
Archive audit trail.

Every archive, restore, purge and backfill appends one row to audit_events in
the same transaction as the change it describes. Rows hold identifiers and
counts only; entity content never reaches this table, so metadata keys that
look like content are refused outright.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, or_

from core.models import AuditEvent

ACTOR_TYPES = ("user", "system", "integration")
TARGET_TYPES = ("archive_entry", "entity")

CONTENT_KEY_FRAGMENTS = ("snapshot", "title", "description", "body", "markdown", "content")
MAX_METADATA_STRING_LENGTH = 500
MAX_TARGET_ID_LENGTH = 200


def _looks_like_content(key: str) -> bool:
    folded = key.strip().lower().replace("-", "_")
    return any(fragment in folded for fragment in CONTENT_KEY_FRAGMENTS)


def _check_metadata(metadata: dict) -> None:
    pending: list[tuple[str, Any]] = [("metadata", metadata)]
    while pending:
        path, value = pending.pop()
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise ValueError(f"{path} keys must be strings")
                if _looks_like_content(key):
                    raise ValueError(f"{path}.{key} would leak entity content")
                pending.append((f"{path}.{key}", item))
        elif isinstance(value, (list, tuple)):
            pending.extend((path, item) for item in value)
        elif isinstance(value, str) and len(value) > MAX_METADATA_STRING_LENGTH:
            raise ValueError(f"{path} exceeds {MAX_METADATA_STRING_LENGTH} characters")


def _check_target_ids(target_ids) -> list[str]:
    if not isinstance(target_ids, (list, tuple)):
        raise ValueError("target_ids must be a list")
    checked = []
    for target_id in target_ids:
        if not isinstance(target_id, str) or not target_id:
            raise ValueError("target_ids must be non-empty strings")
        if len(target_id) > MAX_TARGET_ID_LENGTH:
            raise ValueError("target_id value too long")
        checked.append(target_id)
    return checked


def log_event(
    db,
    *,
    event_type: str,
    actor_type: str,
    actor_id: Optional[str] = None,
    owner_id: Optional[str] = None,
    target_type: str,
    target_ids: list[str],
    count_affected: Optional[int] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuditEvent:
    """Add an audit row to ``db``; the caller commits or rolls it back."""
    if not isinstance(event_type, str) or not event_type.startswith("archive."):
        raise ValueError("event_type must be an archive.* event")
    if actor_type not in ACTOR_TYPES:
        raise ValueError(f"actor_type must be one of: {'|'.join(ACTOR_TYPES)}")
    if target_type not in TARGET_TYPES:
        raise ValueError(f"target_type must be one of: {'|'.join(TARGET_TYPES)}")
    if metadata is not None:
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be a dict")
        _check_metadata(metadata)

    event = AuditEvent(
        created_at=datetime.utcnow(),
        event_type=event_type,
        actor_type=actor_type,
        actor_id=actor_id,
        owner_id=owner_id,
        target_type=target_type,
        target_ids=_check_target_ids(target_ids),
        count_affected=count_affected,
        reason=reason,
        request_id=request_id,
        metadata_=metadata,
    )
    db.add(event)
    return event


def _event_payload(row: AuditEvent) -> dict:
    metadata = row.metadata_ or {}
    return {
        "event_id": row.event_id,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "event_type": row.event_type,
        "actor_type": row.actor_type,
        "actor_id": row.actor_id,
        "entity_kind": metadata.get("entity_kind"),
        "entity_id": metadata.get("entity_id"),
        "archive_entry_ids": list(row.target_ids or []),
        "count_affected": row.count_affected,
        "request_id": row.request_id,
        "metadata": metadata,
    }


def list_archive_events(
    db,
    *,
    owner_id: str,
    limit: int,
    cursor: Optional[str] = None,
) -> dict:
    """
    Newest-first page of an owner's archive events.

    ``cursor`` is the ``event_id`` of the last event on the previous page; an
    id that does not belong to the owner is rejected.
    """
    query = db.query(AuditEvent).filter(AuditEvent.owner_id == owner_id)

    if cursor:
        anchor = (
            db.query(AuditEvent)
            .filter(AuditEvent.event_id == cursor, AuditEvent.owner_id == owner_id)
            .first()
        )
        if anchor is None:
            raise ValueError(f"unknown audit cursor {cursor}")
        query = query.filter(
            or_(
                AuditEvent.created_at < anchor.created_at,
                and_(
                    AuditEvent.created_at == anchor.created_at,
                    AuditEvent.event_id < anchor.event_id,
                ),
            )
        )

    rows = (
        query.order_by(AuditEvent.created_at.desc(), AuditEvent.event_id.desc())
        .limit(limit + 1)
        .all()
    )
    has_more = len(rows) > limit
    rows = rows[:limit]
    return {
        "status": "ok",
        "count": len(rows),
        "events": [_event_payload(row) for row in rows],
        "next_cursor": rows[-1].event_id if has_more else None,
    }
