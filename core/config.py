"""
Shared configuration for the Keepsake archive core.
"""

from __future__ import annotations

import logging
import os

LOG_LEVEL = os.environ.get("KEEPSAKE_LOG_LEVEL", "INFO").strip().upper()

logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger("keepsake")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _derive_effective_backend(db_backend: str) -> str:
    return db_backend if db_backend in {"postgres", "sqlite"} else "postgres"


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/keepsake.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_BACKEND_EFFECTIVE = _derive_effective_backend(DB_BACKEND)

# Database initialization controls
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Archive listing limits
ARCHIVE_PAGE_SIZE_DEFAULT = _get_int("KEEPSAKE_PAGE_SIZE_DEFAULT", 20)
ARCHIVE_PAGE_SIZE_MAX = _get_int("KEEPSAKE_PAGE_SIZE_MAX", 100)
ARCHIVE_SEARCH_MAX_LENGTH = _get_int("KEEPSAKE_SEARCH_MAX_LENGTH", 200)

# Summary extraction
DESCRIPTION_PREVIEW_LENGTH = _get_int("KEEPSAKE_DESCRIPTION_PREVIEW_LENGTH", 200)

# "title" sorts on the title extracted at archive time; "snapshot" keeps the
# legacy ordering over the raw snapshot text.
ARCHIVE_TITLE_SORT_MODE = os.environ.get("KEEPSAKE_TITLE_SORT_MODE", "title").strip().lower()

# Audit listing
AUDIT_LIMIT_DEFAULT = _get_int("KEEPSAKE_AUDIT_LIMIT_DEFAULT", 100)
AUDIT_LIMIT_MAX = _get_int("KEEPSAKE_AUDIT_LIMIT_MAX", 500)

# Users allowed to run the cross-owner backfill over HTTP (comma separated).
MAINTENANCE_USER_IDS = frozenset(
    item.strip()
    for item in os.environ.get("KEEPSAKE_MAINTENANCE_USER_IDS", "").split(",")
    if item.strip()
)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, DB_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if ARCHIVE_TITLE_SORT_MODE not in {"title", "snapshot"}:
        errors.append("KEEPSAKE_TITLE_SORT_MODE must be 'title' or 'snapshot'")

    if ARCHIVE_PAGE_SIZE_MAX <= 0:
        errors.append("KEEPSAKE_PAGE_SIZE_MAX must be positive")
    elif not 0 < ARCHIVE_PAGE_SIZE_DEFAULT <= ARCHIVE_PAGE_SIZE_MAX:
        errors.append("KEEPSAKE_PAGE_SIZE_DEFAULT must be between 1 and KEEPSAKE_PAGE_SIZE_MAX")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        url_lower = DATABASE_URL.lower()
        is_sqlite_url = url_lower.startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    DB_BACKEND_EFFECTIVE = _derive_effective_backend(DB_BACKEND)

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
