"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

import core.config as config
from core.context import AuthContext, RequestContext


async def get_auth_context(
    x_user_id: Optional[str] = Header(default=None),
) -> AuthContext:
    # The upstream auth layer forwards the authenticated user in X-User-Id.
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return AuthContext(user_id=user_id, actor="user")


async def get_request_context(
    auth: AuthContext = Depends(get_auth_context),
    x_request_id: Optional[str] = Header(default=None),
) -> RequestContext:
    return RequestContext(auth=auth, request_id=x_request_id, source="http")


async def get_maintenance_context(
    context: RequestContext = Depends(get_request_context),
) -> RequestContext:
    if context.auth.user_id not in config.MAINTENANCE_USER_IDS:
        raise HTTPException(status_code=403, detail="maintenance access required")
    return context
