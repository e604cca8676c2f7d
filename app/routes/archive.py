"""
Archive endpoints.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import core.config as config
from core.context import RequestContext
from core.errors import SnapshotDecodeError
from core.services import archive_service
from app.deps import get_maintenance_context, get_request_context


router = APIRouter(prefix="/api/archive", tags=["archive"])

ERROR_STATUS_CODES = {
    "not_found": 404,
    "validation_error": 400,
    "unsupported": 400,
    "conflict": 409,
}


def _unwrap(result: dict) -> dict:
    if result.get("status") == "error":
        status_code = ERROR_STATUS_CODES.get(result.get("error_type"), 400)
        raise HTTPException(status_code=status_code, detail=result)
    return result


@router.get("")
def list_archive(
    entity_kind: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(default=1),
    page_size: int = Query(default=config.ARCHIVE_PAGE_SIZE_DEFAULT),
    sort_by: str = "archived_at",
    sort_dir: str = "desc",
    context: RequestContext = Depends(get_request_context),
):
    """List archived entities for the caller."""
    return _unwrap(
        archive_service.list_archived_entities(
            context.auth.user_id,
            entity_kind=entity_kind,
            search=search,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_dir=sort_dir,
        )
    )


@router.get("/audit")
def list_audit(
    limit: int = Query(default=config.AUDIT_LIMIT_DEFAULT),
    cursor: Optional[str] = None,
    context: RequestContext = Depends(get_request_context),
):
    return _unwrap(
        archive_service.list_archive_audit_events(context.auth.user_id, limit=limit, cursor=cursor)
    )


@router.post("/migrate")
def migrate(context: RequestContext = Depends(get_maintenance_context)):
    """Backfill archive entries for every owner's archived-flagged entities."""
    return _unwrap(archive_service.run_archive_backfill(context=context))


@router.post("/entities/{entity_kind}/{entity_id}")
def archive_entity(
    entity_kind: str,
    entity_id: str,
    context: RequestContext = Depends(get_request_context),
):
    return _unwrap(
        archive_service.archive_entity(context.auth.user_id, entity_kind, entity_id, context=context)
    )


@router.get("/{entry_id}/detail")
def archive_detail(entry_id: str, context: RequestContext = Depends(get_request_context)):
    return _unwrap(archive_service.get_archived_entity_detail(context.auth.user_id, entry_id))


@router.post("/{entry_id}/restore")
def restore_entry(entry_id: str, context: RequestContext = Depends(get_request_context)):
    try:
        result = archive_service.restore_archived_entity(context.auth.user_id, entry_id, context=context)
    except SnapshotDecodeError as exc:
        raise HTTPException(
            status_code=500,
            detail={
                "status": "error",
                "error_type": "decode_error",
                "message": f"archived snapshot could not be restored: {exc}",
            },
        ) from exc
    return _unwrap(result)


@router.delete("/{entry_id}/permanent")
def delete_entry_permanently(entry_id: str, context: RequestContext = Depends(get_request_context)):
    return _unwrap(
        archive_service.permanently_delete_archive_entry(context.auth.user_id, entry_id, context=context)
    )
