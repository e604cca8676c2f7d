"""
Display summaries derived from raw archive snapshots.

The extractor reads the snapshot as a plain JSON document, never as a mapped
entity, so entries captured under older column names still render.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union

from core.models import EntityKind
from core.services.archive_shared import DESCRIPTION_PREVIEW_LENGTH, logger

NIL_UUID = "00000000-0000-0000-0000-000000000000"
DUE_DATE_FORMAT = "%d.%m.%Y"

SummaryValue = Union[str, int, Decimal, None]


@dataclass(frozen=True)
class SummaryField:
    key: str
    value: SummaryValue

    def as_dict(self) -> dict:
        value = str(self.value) if isinstance(self.value, Decimal) else self.value
        return {"key": self.key, "value": value}


@dataclass
class ArchiveSummary:
    title: str
    description: Optional[str] = None
    fields: list[SummaryField] = field(default_factory=list)

    def fields_as_dicts(self) -> list[dict]:
        return [item.as_dict() for item in self.fields]


class _Missing(LookupError):
    pass


def _variants(name: str) -> list[str]:
    parts = name.split("_")
    pascal = "".join(part.capitalize() for part in parts)
    camel = parts[0] + "".join(part.capitalize() for part in parts[1:])
    ordered = [name, pascal, camel]
    return list(dict.fromkeys(ordered))


def _lookup(document: dict, *names: str) -> Any:
    """Return the first present value among ``names`` in any casing convention."""
    for name in names:
        for key in _variants(name):
            if key in document:
                return document[key]
    raise _Missing(names[0])


def _lookup_optional(document: dict, *names: str) -> Any:
    try:
        return _lookup(document, *names)
    except _Missing:
        return None


# =============================================================================
# Field readers
# =============================================================================

def _as_text(value) -> str:
    if value is None:
        raise _Missing("null")
    if isinstance(value, (dict, list)):
        raise TypeError(f"expected text, got {type(value).__name__}")
    return str(value)


def _as_decimal(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise TypeError("expected a number")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc


def _as_due_date(value) -> str:
    if not isinstance(value, str):
        raise TypeError("expected an ISO date string")
    text = value.strip().replace("Z", "+00:00")
    parsed: Union[date, datetime]
    parsed = datetime.fromisoformat(text) if "T" in text else date.fromisoformat(text)
    return parsed.strftime(DUE_DATE_FORMAT)


def _note_body(document: dict) -> Optional[str]:
    body = _lookup_optional(document, "body", "markdown")
    return body if isinstance(body, str) else None


def _note_character_count(document: dict) -> int:
    body = _note_body(document)
    if body is None:
        raise _Missing("body")
    return len(body)


def _note_group_id(document: dict) -> str:
    value = _as_text(_lookup(document, "group_id", "note_group_id"))
    if not value.strip() or value == NIL_UUID:
        raise _Missing("group_id")
    return value


FieldReader = Callable[[dict], SummaryValue]

KIND_FIELDS: dict[EntityKind, list[tuple[str, FieldReader]]] = {
    EntityKind.note: [
        ("character_count", _note_character_count),
        ("group_id", _note_group_id),
    ],
    EntityKind.task: [
        ("status", lambda doc: _as_text(_lookup(doc, "status"))),
        ("priority", lambda doc: _as_text(_lookup(doc, "priority"))),
        ("due_date", lambda doc: _as_due_date(_lookup(doc, "due_date"))),
    ],
    EntityKind.transaction: [
        ("amount", lambda doc: _as_decimal(_lookup(doc, "amount"))),
        ("currency_code", lambda doc: _as_text(_lookup(doc, "currency_code"))),
        ("type", lambda doc: _as_text(_lookup(doc, "type"))),
    ],
    EntityKind.budget: [
        ("limit", lambda doc: _as_decimal(_lookup(doc, "limit"))),
        ("currency_code", lambda doc: _as_text(_lookup(doc, "currency_code"))),
    ],
    EntityKind.goal: [
        ("target_amount", lambda doc: _as_decimal(_lookup(doc, "target_amount"))),
        ("current_amount", lambda doc: _as_decimal(_lookup(doc, "current_amount"))),
        ("currency_code", lambda doc: _as_text(_lookup(doc, "currency_code"))),
    ],
}


# =============================================================================
# Summary
# =============================================================================

def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _extract_title(document: dict, kind: EntityKind) -> str:
    value = _lookup_optional(document, "title")
    if isinstance(value, str) and value.strip():
        return value
    return f"{kind.label} (untitled)"


def _extract_description(document: dict, kind: EntityKind) -> Optional[str]:
    value = _lookup_optional(document, "description")
    if isinstance(value, str) and value:
        return value
    if kind == EntityKind.note:
        body = _note_body(document)
        if body:
            return _truncate(body, DESCRIPTION_PREVIEW_LENGTH)
    return None


def summarize_document(kind: EntityKind, document: dict) -> ArchiveSummary:
    summary = ArchiveSummary(
        title=_extract_title(document, kind),
        description=_extract_description(document, kind),
    )
    for key, reader in KIND_FIELDS.get(kind, []):
        try:
            summary.fields.append(SummaryField(key, reader(document)))
        except _Missing:
            continue
        except (TypeError, ValueError, AttributeError) as exc:
            logger.debug(
                "summary_field_skipped",
                extra={"entity_kind": kind.value, "field": key, "detail": str(exc)},
            )
    return summary


def summarize_snapshot(kind: EntityKind, snapshot: Union[str, bytes, None]) -> ArchiveSummary:
    """
    Build a display summary for an archived snapshot.

    Never raises: an unreadable document degrades to a placeholder title.
    """
    try:
        document = json.loads(snapshot)
        if not isinstance(document, dict):
            raise ValueError("snapshot root is not an object")
    except (TypeError, ValueError) as exc:
        logger.warning(
            "summary_unavailable",
            extra={"entity_kind": kind.value, "detail": str(exc)},
        )
        return ArchiveSummary(title=f"{kind.label} (metadata unavailable)")
    return summarize_document(kind, document)


__all__ = [
    "ArchiveSummary",
    "SummaryField",
    "summarize_document",
    "summarize_snapshot",
]
