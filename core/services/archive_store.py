"""
Archive entry persistence and listing queries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, literal

import core.config as config
from core.errors import ValidationIssue
from core.models import ArchiveEntry, EntityKind
from core.services.archive_shared import (
    ARCHIVE_PAGE_SIZE_DEFAULT,
    ARCHIVE_PAGE_SIZE_MAX,
    ARCHIVE_SEARCH_MAX_LENGTH,
)
from core.validators import validate_choice, validate_limit, validate_optional_text, validate_page

SORT_FIELDS = {
    "archivedat": "archived_at",
    "title": "title",
    "entitykind": "entity_kind",
    "kind": "entity_kind",
}
SORT_DIRECTIONS = {
    "asc": "asc",
    "ascending": "asc",
    "desc": "desc",
    "descending": "desc",
}


@dataclass(frozen=True)
class ArchiveQuery:
    entity_kind: Optional[EntityKind] = None
    search: Optional[str] = None
    page: int = 1
    page_size: int = ARCHIVE_PAGE_SIZE_DEFAULT
    sort_by: str = "archived_at"
    sort_dir: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def build_archive_query(
    entity_kind: Optional[EntityKind] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = ARCHIVE_PAGE_SIZE_DEFAULT,
    sort_by: Optional[str] = "archived_at",
    sort_dir: Optional[str] = "desc",
) -> ArchiveQuery:
    validate_page(page)
    validate_limit(page_size, "page_size", ARCHIVE_PAGE_SIZE_MAX)
    validate_optional_text(search, "search", ARCHIVE_SEARCH_MAX_LENGTH)
    search_value = search.strip() if search else None
    return ArchiveQuery(
        entity_kind=entity_kind,
        search=search_value or None,
        page=page,
        page_size=page_size,
        sort_by=validate_choice(sort_by or "archived_at", "sort_by", SORT_FIELDS),
        sort_dir=validate_choice(sort_dir or "desc", "sort_dir", SORT_DIRECTIONS),
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _sort_column(sort_by: str):
    if sort_by == "title":
        if config.ARCHIVE_TITLE_SORT_MODE == "snapshot":
            return ArchiveEntry.snapshot
        return func.lower(func.coalesce(ArchiveEntry.title, ""))
    if sort_by == "entity_kind":
        return ArchiveEntry.entity_kind
    return ArchiveEntry.archived_at


def list_entries(db, owner_id: str, query: ArchiveQuery) -> tuple[list[ArchiveEntry], int]:
    """Return one page of the owner's entries and the filtered total."""
    base = db.query(ArchiveEntry).filter(ArchiveEntry.owner_id == owner_id)
    if query.entity_kind is not None:
        base = base.filter(ArchiveEntry.entity_kind == query.entity_kind.value)
    if query.search:
        pattern = f"%{_escape_like(query.search)}%"
        base = base.filter(
            func.lower(ArchiveEntry.snapshot).like(func.lower(literal(pattern)), escape="\\")
        )

    total = base.count()

    column = _sort_column(query.sort_by)
    if query.sort_dir == "asc":
        ordering = (column.asc(), ArchiveEntry.id.asc())
    else:
        ordering = (column.desc(), ArchiveEntry.id.desc())

    rows = (
        base.order_by(*ordering)
        .offset(query.offset)
        .limit(query.page_size)
        .all()
    )
    return rows, total


def get_entry(db, owner_id: str, entry_id: str) -> Optional[ArchiveEntry]:
    return (
        db.query(ArchiveEntry)
        .filter(ArchiveEntry.id == entry_id, ArchiveEntry.owner_id == owner_id)
        .first()
    )


def find_entry_for_entity(
    db,
    entity_kind: EntityKind,
    entity_id: str,
    owner_id: Optional[str] = None,
) -> Optional[ArchiveEntry]:
    query = db.query(ArchiveEntry).filter(
        ArchiveEntry.entity_kind == entity_kind.value,
        ArchiveEntry.entity_id == entity_id,
    )
    if owner_id is not None:
        query = query.filter(ArchiveEntry.owner_id == owner_id)
    return query.first()


def insert_entry(db, entry: ArchiveEntry) -> ArchiveEntry:
    if not entry.snapshot:
        raise ValidationIssue("archive snapshot must not be empty", field="snapshot", error_type="required")
    db.add(entry)
    db.flush()
    return entry


def delete_entry(db, entry: ArchiveEntry) -> None:
    db.delete(entry)
    db.flush()


__all__ = [
    "ArchiveQuery",
    "build_archive_query",
    "list_entries",
    "get_entry",
    "find_entry_for_entity",
    "insert_entry",
    "delete_entry",
]
