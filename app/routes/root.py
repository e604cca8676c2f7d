"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import core.config as config
from core.models import EntityKind


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Keepsake",
        "version": "0.1.0",
        "description": "Archive and restore for notes, tasks and finance records",
        "entity_kinds": [kind.value for kind in EntityKind],
        "title_sort_mode": config.ARCHIVE_TITLE_SORT_MODE,
        "endpoints": {
            "health": "/health",
            "archive": {
                "list": "/api/archive",
                "detail": "/api/archive/{entry_id}/detail",
                "restore": "/api/archive/{entry_id}/restore",
                "permanent_delete": "/api/archive/{entry_id}/permanent",
                "archive_entity": "/api/archive/entities/{entity_kind}/{entity_id}",
                "migrate": "/api/archive/migrate",
                "audit": "/api/archive/audit",
            },
        },
    }
