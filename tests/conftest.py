import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import pytest
from sqlalchemy.orm import sessionmaker

from core.db import DB, build_engine
from core.models import Base


@pytest.fixture
def server_db(tmp_path):
    db_path = tmp_path / "keepsake.sqlite"
    engine = build_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = SessionLocal
    try:
        yield DB
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def db_session(server_db):
    session = server_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()
