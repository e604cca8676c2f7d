import os

os.environ.setdefault("DB_BACKEND", "sqlite")


def test_core_imports():
    import core.context  # noqa: F401
    import core.models  # noqa: F401
    import core.services.archive_service  # noqa: F401


def test_every_kind_has_a_gateway():
    from core.models import ARCHIVABLE_MODELS
    from core.services.entity_gateways import ENTITY_GATEWAYS

    assert set(ENTITY_GATEWAYS) == set(ARCHIVABLE_MODELS)
    for kind, gateway in ENTITY_GATEWAYS.items():
        assert gateway.model is ARCHIVABLE_MODELS[kind]


def test_core_smoke_lifecycle(server_db):
    import core.services.archive_service as archive

    from factories import make_note

    make_note("N1", title="Groceries for the trip")

    archived = archive.archive_entity("user-1", "note", "N1")
    assert archived["status"] == "archived"

    search = archive.list_archived_entities("user-1", search="GROCERIES")
    assert search["total_count"] == 1
    assert search["total_pages"] == 1

    restored = archive.restore_archived_entity("user-1", archived["archive_entry_id"])
    assert restored["status"] == "restored"

    after = archive.list_archived_entities("user-1")
    assert after["total_count"] == 0
    assert after["items"] == []
    assert after["total_pages"] == 0
