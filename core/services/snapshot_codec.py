"""
Snapshot encoding and decoding for archivable entities.

A snapshot is a compact JSON document holding every column of the entity and,
recursively, its related objects. Relationship edges that lead back to an
object already on the traversal path (a subtask's ``task`` back-reference, for
example) are left out, so cyclic object graphs encode to a finite tree.

Decoding binds document keys to mapped attributes case-insensitively and
ignores underscores, so ``CurrencyCode``, ``currencyCode`` and
``currency_code`` all land on the same column.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum as PyEnum
from typing import Optional, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import Boolean, Date, DateTime, Enum, Float, Integer, JSON, Numeric, String

from core.errors import SnapshotDecodeError
from core.models import ARCHIVABLE_MODELS, EntityKind
from core.services.archive_shared import _deserialize_datetime, logger


def _normalize_key(key: str) -> str:
    return key.replace("_", "").lower()


# =============================================================================
# Encoding
# =============================================================================

def _encode_value(value):
    if value is None:
        return None
    if isinstance(value, PyEnum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _entity_to_document(entity, path: tuple[int, ...]) -> dict:
    state = sa_inspect(entity)
    mapper = state.mapper
    path = path + (id(entity),)

    document: dict = {}
    for attr in mapper.column_attrs:
        document[attr.key] = _encode_value(getattr(entity, attr.key))

    for rel in mapper.relationships:
        related = getattr(entity, rel.key)
        if related is None:
            document[rel.key] = None
            continue
        if rel.uselist:
            document[rel.key] = [
                _entity_to_document(child, path)
                for child in related
                if id(child) not in path
            ]
        elif id(related) not in path:
            document[rel.key] = _entity_to_document(related, path)
        # else: back-reference to an ancestor, omitted

    return document


def encode_entity(entity) -> str:
    """Serialize a mapped entity (and its reachable children) to snapshot JSON."""
    document = _entity_to_document(entity, ())
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


# =============================================================================
# Decoding
# =============================================================================

def _coerce_enum(enum_class, value, where: str):
    if isinstance(value, enum_class):
        return value
    if isinstance(value, str):
        wanted = _normalize_key(value.strip())
        for member in enum_class:
            if _normalize_key(member.value) == wanted or _normalize_key(member.name) == wanted:
                return member
    raise SnapshotDecodeError(f"{where}: {value!r} is not a valid {enum_class.__name__}")


def _coerce_column_value(column, value, where: str):
    if value is None:
        if not column.nullable:
            raise SnapshotDecodeError(f"{where} must not be null")
        return None

    col_type = column.type
    try:
        if isinstance(col_type, Enum) and col_type.enum_class is not None:
            return _coerce_enum(col_type.enum_class, value, where)
        if isinstance(col_type, DateTime):
            return _deserialize_datetime(value)
        if isinstance(col_type, Date):
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            if isinstance(value, str):
                text = value.strip()
                return datetime.fromisoformat(text.replace("Z", "+00:00")).date() if "T" in text else date.fromisoformat(text)
            raise SnapshotDecodeError(f"{where}: {value!r} is not a date")
        if isinstance(col_type, Boolean):
            if isinstance(value, bool):
                return value
            if value in (0, 1):
                return bool(value)
            raise SnapshotDecodeError(f"{where}: {value!r} is not a boolean")
        if isinstance(col_type, Float):
            if isinstance(value, bool):
                raise SnapshotDecodeError(f"{where}: {value!r} is not a number")
            return float(value)
        if isinstance(col_type, Numeric):
            if isinstance(value, bool) or isinstance(value, (dict, list)):
                raise SnapshotDecodeError(f"{where}: {value!r} is not a number")
            return Decimal(str(value))
        if isinstance(col_type, Integer):
            if isinstance(value, bool) or isinstance(value, (dict, list)):
                raise SnapshotDecodeError(f"{where}: {value!r} is not an integer")
            return int(value)
        if isinstance(col_type, String):
            if isinstance(value, (dict, list)):
                raise SnapshotDecodeError(f"{where}: expected text, got {type(value).__name__}")
            return value if isinstance(value, str) else str(value)
        if isinstance(col_type, JSON):
            return value
    except SnapshotDecodeError:
        raise
    except (ValueError, TypeError, InvalidOperation) as exc:
        raise SnapshotDecodeError(f"{where}: {exc}") from exc
    return value


def _document_to_entity(model, document, where: str):
    if not isinstance(document, dict):
        raise SnapshotDecodeError(f"{where} must be a JSON object")

    mapper = sa_inspect(model)
    lookup = {_normalize_key(str(key)): value for key, value in document.items()}

    values = {}
    for attr in mapper.column_attrs:
        normalized = _normalize_key(attr.key)
        if normalized not in lookup:
            continue
        column = attr.columns[0]
        raw = lookup[normalized]
        if raw is None and not column.nullable and column.default is not None:
            # Leave unset so the column default applies on insert.
            continue
        values[attr.key] = _coerce_column_value(column, raw, f"{where}.{attr.key}")

    for pk_column in mapper.primary_key:
        pk_attr = mapper.get_property_by_column(pk_column)
        if values.get(pk_attr.key) is None:
            raise SnapshotDecodeError(f"{where}.{pk_attr.key} is missing")

    for attr in mapper.column_attrs:
        column = attr.columns[0]
        if attr.key in values or attr.key == "owner_id":
            continue
        if column.nullable or column.primary_key or column.foreign_keys:
            continue
        if column.default is not None or column.server_default is not None:
            continue
        raise SnapshotDecodeError(f"{where}.{attr.key} is missing")

    instance = model(**values)

    for rel in mapper.relationships:
        raw = lookup.get(_normalize_key(rel.key))
        if raw is None:
            continue
        target = rel.mapper.class_
        if rel.uselist:
            if not isinstance(raw, list):
                raise SnapshotDecodeError(f"{where}.{rel.key} must be a list")
            children = [
                _document_to_entity(target, item, f"{where}.{rel.key}[{index}]")
                for index, item in enumerate(raw)
            ]
            setattr(instance, rel.key, children)
        else:
            setattr(instance, rel.key, _document_to_entity(target, raw, f"{where}.{rel.key}"))

    return instance


def decode_snapshot(snapshot: Union[str, bytes], model):
    """Rebuild a transient ``model`` instance from snapshot JSON."""
    if isinstance(snapshot, bytes):
        try:
            snapshot = snapshot.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SnapshotDecodeError("snapshot is not valid UTF-8") from exc
    try:
        document = json.loads(snapshot)
    except (TypeError, ValueError) as exc:
        raise SnapshotDecodeError(f"snapshot is not valid JSON: {exc}") from exc
    return _document_to_entity(model, document, model.__name__)


def decode_entity(snapshot: Union[str, bytes], entity_kind: EntityKind, model: Optional[type] = None):
    target = model or ARCHIVABLE_MODELS.get(entity_kind)
    if target is None:
        raise SnapshotDecodeError(f"no model registered for {entity_kind}")
    try:
        return decode_snapshot(snapshot, target)
    except SnapshotDecodeError as exc:
        logger.error(
            "snapshot_decode_failed",
            extra={"entity_kind": getattr(entity_kind, "value", str(entity_kind)), "detail": str(exc)},
        )
        raise
