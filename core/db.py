"""
Engine construction and the schema gate run at startup.

The archive tables are owned by Alembic; the process refuses to serve against
a database that is not at the newest revision unless AUTO_MIGRATE_ON_STARTUP
lets it upgrade in place.
"""

from __future__ import annotations

import os
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import core.config as config

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class DB:
    """Engine and session factory shared by the services."""

    engine = None
    SessionLocal = None


def _unicode_lower(value):
    if isinstance(value, str):
        return value.lower()
    return value


def install_sqlite_functions(engine) -> None:
    """Swap SQLite's ASCII-only lower() for str.lower on every new connection."""

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, _unicode_lower)


def build_engine(url: str):
    is_sqlite = url.startswith("sqlite")
    engine_kwargs = {"pool_pre_ping": True}
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(url, **engine_kwargs)
    if is_sqlite:
        install_sqlite_functions(engine)
    return engine


def _alembic_config() -> Config:
    alembic_cfg = Config(os.path.join(PROJECT_ROOT, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(PROJECT_ROOT, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", config.DATABASE_URL)
    return alembic_cfg


def schema_revisions(engine) -> tuple[Optional[str], Optional[str]]:
    """Return (applied revision, newest shipped revision)."""
    head = ScriptDirectory.from_config(_alembic_config()).get_current_head()
    with engine.connect() as conn:
        applied = MigrationContext.configure(conn).get_current_revision()
    return applied, head


def _migrate_to_head(engine) -> None:
    applied, head = schema_revisions(engine)
    if applied == head:
        return
    if not config.AUTO_MIGRATE_ON_STARTUP:
        raise RuntimeError(
            f"Archive schema is at {applied}, this build expects {head}. "
            "Run 'alembic upgrade head' or set AUTO_MIGRATE_ON_STARTUP=true for dev."
        )

    config.logger.info("Upgrading archive schema from %s to %s", applied, head)
    command.upgrade(_alembic_config(), "head")
    if schema_revisions(engine)[0] != head:
        raise RuntimeError("Archive schema upgrade stopped short of head")


def init_db() -> None:
    config.validate_and_prepare_config()

    config.logger.info("Connecting to %s database...", config.DB_BACKEND_EFFECTIVE)
    DB.engine = build_engine(config.DATABASE_URL)
    DB.SessionLocal = sessionmaker(bind=DB.engine)

    _migrate_to_head(DB.engine)

    config.logger.info("Database initialized")
