import os

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

from fastapi.testclient import TestClient

import core.config as config
from core.db import DB
from core.models import ArchiveEntry, Note

from factories import OWNER, make_note, make_transaction


@pytest.fixture
def client(server_db):
    from app.main import app

    # Not used as a context manager, so the lifespan (init_db) does not run.
    return TestClient(app)


HEADERS = {"X-User-Id": OWNER, "X-Request-Id": "req-routes"}


def test_requires_user_header(client):
    response = client.get("/api/archive")

    assert response.status_code == 401


def test_archive_list_detail_restore_flow(client):
    make_note("N1", title="Trip")

    archived = client.post("/api/archive/entities/note/N1", headers=HEADERS)
    assert archived.status_code == 200
    entry_id = archived.json()["archive_entry_id"]

    listing = client.get("/api/archive", params={"entity_kind": "Note", "page_size": 5}, headers=HEADERS)
    assert listing.status_code == 200
    body = listing.json()
    assert body["total_count"] == 1
    assert body["page_size"] == 5
    assert body["items"][0]["title"] == "Trip"

    detail = client.get(f"/api/archive/{entry_id}/detail", headers=HEADERS)
    assert detail.status_code == 200
    assert detail.json()["entity_id"] == "N1"

    restored = client.post(f"/api/archive/{entry_id}/restore", headers=HEADERS)
    assert restored.status_code == 200
    assert restored.json()["branch"] == "soft"


def test_permanent_delete_route(client):
    make_transaction("X1", "10.00")
    entry_id = client.post("/api/archive/entities/transaction/X1", headers=HEADERS).json()["archive_entry_id"]

    response = client.delete(f"/api/archive/{entry_id}/permanent", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "deleted"


def test_error_statuses(client):
    assert client.get("/api/archive/missing/detail", headers=HEADERS).status_code == 404
    assert client.post("/api/archive/entities/widget/W1", headers=HEADERS).status_code == 400
    assert client.get("/api/archive", params={"sort_by": "color"}, headers=HEADERS).status_code == 400


def test_decode_failure_is_server_error(client):
    db = DB.SessionLocal()
    try:
        entry = ArchiveEntry(owner_id=OWNER, entity_kind="note", entity_id="GONE", snapshot="[]")
        db.add(entry)
        db.commit()
        entry_id = entry.id
    finally:
        db.close()

    response = client.post(f"/api/archive/{entry_id}/restore", headers=HEADERS)

    assert response.status_code == 500
    assert response.json()["detail"]["error_type"] == "decode_error"


def test_conflict_status(client):
    make_note("N2")
    entry_id = client.post("/api/archive/entities/note/N2", headers=HEADERS).json()["archive_entry_id"]
    db = DB.SessionLocal()
    try:
        db.query(Note).filter(Note.id == "N2").delete()
        db.add(Note(id="N2", owner_id="user-2", title="Other owner"))
        db.commit()
    finally:
        db.close()

    response = client.post(f"/api/archive/{entry_id}/restore", headers=HEADERS)

    assert response.status_code == 409


def test_migrate_requires_maintenance_user(client):
    make_note("N3", is_archived=True)

    response = client.post("/api/archive/migrate", headers=HEADERS)

    assert response.status_code == 403
    assert client.get("/api/archive", headers=HEADERS).json()["total_count"] == 0


def test_migrate_and_audit_routes(client, monkeypatch):
    monkeypatch.setattr(config, "MAINTENANCE_USER_IDS", frozenset({OWNER}))
    make_note("N3", is_archived=True)

    migrated = client.post("/api/archive/migrate", headers=HEADERS)
    assert migrated.status_code == 200
    assert migrated.json()["created_count"] == 1

    audit = client.get("/api/archive/audit", headers=HEADERS)
    assert audit.status_code == 200
    assert audit.json()["events"][0]["event_type"] == "archive.backfilled"
    assert audit.json()["events"][0]["request_id"] == "req-routes"


def test_root_lists_kinds(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["service"] == "Keepsake"
    assert "goal" in response.json()["entity_kinds"]


def test_actor_header_cannot_change_audit_actor(client):
    make_note("N4")

    client.post(
        "/api/archive/entities/note/N4",
        headers={**HEADERS, "X-Actor": "system"},
    )

    events = client.get("/api/archive/audit", headers=HEADERS).json()["events"]
    assert [event["actor_type"] for event in events] == ["user"]
    assert events[0]["actor_id"] == OWNER


def test_snapshot_missing_required_column_is_server_error(client):
    db = DB.SessionLocal()
    try:
        entry = ArchiveEntry(
            owner_id=OWNER,
            entity_kind="transaction",
            entity_id="X9",
            snapshot='{"id": "X9", "currency_code": "EUR", "type": "income"}',
        )
        db.add(entry)
        db.commit()
        entry_id = entry.id
    finally:
        db.close()

    response = client.post(f"/api/archive/{entry_id}/restore", headers=HEADERS)

    assert response.status_code == 500
    assert "amount is missing" in response.json()["detail"]["message"]


def test_audit_route_pages_with_cursor(client):
    for note_id in ("N5", "N6", "N7"):
        make_note(note_id)
        client.post(f"/api/archive/entities/note/{note_id}", headers=HEADERS)

    first = client.get("/api/archive/audit", params={"limit": 2}, headers=HEADERS).json()
    assert first["count"] == 2
    assert first["next_cursor"] == first["events"][-1]["event_id"]

    rest = client.get(
        "/api/archive/audit",
        params={"limit": 2, "cursor": first["next_cursor"]},
        headers=HEADERS,
    ).json()
    assert rest["count"] == 1
    assert rest["next_cursor"] is None
    seen = {event["entity_id"] for event in first["events"] + rest["events"]}
    assert seen == {"N5", "N6", "N7"}

    unknown = client.get("/api/archive/audit", params={"cursor": "nope"}, headers=HEADERS)
    assert unknown.status_code == 400
