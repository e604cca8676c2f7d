"""
Shared helpers and configuration for archive services.
"""

from __future__ import annotations

from datetime import date, datetime
from functools import wraps
from typing import Callable, Optional

import core.config as config
from core.audit import ACTOR_TYPES, log_event
from core.context import RequestContext
from core.errors import (
    ArchiveConflictError,
    NotFoundError,
    SnapshotDecodeError,
    ValidationIssue,
)

# =============================================================================
# Configuration
# =============================================================================

logger = config.logger

ARCHIVE_PAGE_SIZE_DEFAULT = config.ARCHIVE_PAGE_SIZE_DEFAULT
ARCHIVE_PAGE_SIZE_MAX = config.ARCHIVE_PAGE_SIZE_MAX
ARCHIVE_SEARCH_MAX_LENGTH = config.ARCHIVE_SEARCH_MAX_LENGTH
DESCRIPTION_PREVIEW_LENGTH = config.DESCRIPTION_PREVIEW_LENGTH


# =============================================================================
# Serialization helpers
# =============================================================================

def _serialize_datetime(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _deserialize_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"cannot interpret {type(value).__name__} as a datetime")
    if parsed.tzinfo is not None:
        # The store keeps naive UTC timestamps.
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


# =============================================================================
# Audit helpers
# =============================================================================

def _resolve_audit_actor(
    context: Optional[RequestContext],
    owner_id: Optional[str],
) -> tuple[str, Optional[str], Optional[str]]:
    actor_type = "system"
    actor_id = None
    request_id = None
    if context:
        actor_label = (context.auth.actor or "").strip().lower() if context.auth else ""
        if context.source != "http" and actor_label in ACTOR_TYPES:
            actor_type = actor_label
        else:
            # HTTP callers are always audited as the authenticated user
            actor_type = "user"
        if context.auth and context.auth.user_id:
            actor_id = str(context.auth.user_id)
        request_id = context.request_id
    elif owner_id:
        actor_type = "user"
        actor_id = owner_id
    return actor_type, actor_id, request_id


def _log_audit_event(
    db,
    *,
    event_type: str,
    owner_id: Optional[str],
    target_type: str,
    target_ids: list,
    count_affected: int,
    context: Optional[RequestContext],
    reason: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> None:
    if not target_ids:
        return
    actor_type, actor_id, request_id = _resolve_audit_actor(context, owner_id)
    log_event(
        db,
        event_type=event_type,
        actor_type=actor_type,
        actor_id=actor_id,
        owner_id=owner_id,
        target_type=target_type,
        target_ids=target_ids,
        count_affected=count_affected,
        reason=reason,
        request_id=request_id,
        metadata=metadata,
    )


# =============================================================================
# Error handling
# =============================================================================

def _tool_error_payload(tool_name: str, exc: ValidationIssue) -> dict:
    error_type = "unsupported" if exc.error_type == "unsupported" else "validation_error"
    return {
        "status": "error",
        "error_type": error_type,
        "tool": tool_name,
        "field": exc.field,
        "message": str(exc),
    }


def _not_found_payload(tool_name: str, exc: NotFoundError) -> dict:
    return {
        "status": "error",
        "error_type": "not_found",
        "tool": tool_name,
        "resource": exc.resource,
        "message": str(exc),
    }


def _conflict_payload(tool_name: str, exc: ArchiveConflictError) -> dict:
    return {
        "status": "error",
        "error_type": "conflict",
        "tool": tool_name,
        "message": str(exc),
    }


def _log_validation_issue(tool_name: str, exc: ValidationIssue, warn: bool = False) -> None:
    payload = {
        "tool": tool_name,
        "field": exc.field,
        "error_type": exc.error_type,
        "detail": str(exc),
    }
    if warn:
        logger.warning("tool_validation_error", extra=payload)
    else:
        logger.info("tool_validation_error", extra=payload)


def _tool_error_handler(fn: Callable[..., dict]) -> Callable[..., dict]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ValidationIssue as exc:
            _log_validation_issue(fn.__name__, exc, warn=False)
            return _tool_error_payload(fn.__name__, exc)
        except NotFoundError as exc:
            logger.info("tool_not_found", extra={"tool": fn.__name__, "resource": exc.resource})
            return _not_found_payload(fn.__name__, exc)
        except ArchiveConflictError as exc:
            logger.warning("tool_conflict", extra={"tool": fn.__name__, "detail": str(exc)})
            return _conflict_payload(fn.__name__, exc)
        except SnapshotDecodeError:
            raise
        except ValueError as exc:
            issue = ValidationIssue(str(exc), field="unknown", error_type="value_error")
            _log_validation_issue(fn.__name__, issue, warn=True)
            return _tool_error_payload(fn.__name__, issue)
    return wrapper


def service_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    return _tool_error_handler(fn)
