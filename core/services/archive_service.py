"""
Archive service facade.
"""

from core.services.archive_backfill import run_archive_backfill
from core.services.archive_engine import (
    archive_entity,
    get_archived_entity_detail,
    list_archive_audit_events,
    list_archived_entities,
    permanently_delete_archive_entry,
    restore_archived_entity,
)
from core.services.entity_gateways import ENTITY_GATEWAYS, get_gateway, parse_entity_kind

__all__ = [
    "archive_entity",
    "restore_archived_entity",
    "permanently_delete_archive_entry",
    "list_archived_entities",
    "get_archived_entity_detail",
    "list_archive_audit_events",
    "run_archive_backfill",
    "ENTITY_GATEWAYS",
    "get_gateway",
    "parse_entity_kind",
]
