"""Tenant-scoped category endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from helpcenter.api.dependencies import TenantScope, get_storage, require_role
from helpcenter.api.schemas import CategoryCreate, CategoryOut, CategoryUpdate
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import CategoryRecord, NotFoundError, Storage

router = APIRouter(prefix="/api/categories", tags=["categories"])


async def _load_category(storage: Storage, scope: TenantScope, category_id: str) -> CategoryRecord:
    category = await storage.get_category(category_id)
    if category is None or category.knowledge_base_id != scope.kb_id:
        raise NotFoundError("category", category_id)
    return category


@router.get("", response_model=list[CategoryOut])
async def list_categories(
    scope: TenantScope = Depends(require_role(Role.VIEWER)),
    storage: Storage = Depends(get_storage),
) -> list[CategoryRecord]:
    return await storage.list_categories(scope.kb_id)


@router.post("", response_model=CategoryOut, status_code=201)
async def create_category(
    payload: CategoryCreate,
    scope: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
    storage: Storage = Depends(get_storage),
) -> CategoryRecord:
    return await storage.create_category(
        scope.kb_id, name=payload.name, description=payload.description, order=payload.order
    )


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    scope: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
    storage: Storage = Depends(get_storage),
) -> CategoryRecord:
    await _load_category(storage, scope, category_id)
    return await storage.update_category(category_id, **payload.model_dump(exclude_unset=True))


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: str,
    scope: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
    storage: Storage = Depends(get_storage),
) -> Response:
    await _load_category(storage, scope, category_id)
    await storage.delete_category(category_id)
    return Response(status_code=204)
