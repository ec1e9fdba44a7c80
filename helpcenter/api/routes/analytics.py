"""Tenant-scoped analytics endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from helpcenter.api.dependencies import TenantScope, get_storage, require_role
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import Storage

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/views")
async def article_views(
    scope: TenantScope = Depends(require_role(Role.VIEWER)),
    storage: Storage = Depends(get_storage),
) -> dict[str, Any]:
    """Total article views and per-article counts, most viewed first."""
    return await storage.article_view_stats(scope.kb_id)


@router.get("/searches")
async def searches(
    scope: TenantScope = Depends(require_role(Role.VIEWER)),
    storage: Storage = Depends(get_storage),
) -> dict[str, Any]:
    """Total searches and the most frequent queries."""
    return await storage.search_stats(scope.kb_id)
