"""
Request-scoped context objects for core services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.errors import ValidationIssue


@dataclass(frozen=True)
class AuthContext:
    user_id: Optional[str] = None
    actor: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    auth: AuthContext
    request_id: Optional[str] = None
    source: Optional[str] = None


def resolve_owner_id(context: Optional[RequestContext]) -> str:
    owner_id = context.auth.user_id if context and context.auth else None
    if not owner_id:
        raise ValidationIssue(
            "owner id is required for this operation",
            field="owner_id",
            error_type="required",
        )
    return owner_id


__all__ = [
    "AuthContext",
    "RequestContext",
    "resolve_owner_id",
]
