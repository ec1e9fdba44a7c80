"""Tenant-scoped article endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from helpcenter.api.dependencies import TenantScope, get_storage, require_role
from helpcenter.api.schemas import ArticleCreate, ArticleOut, ArticleUpdate
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import ArticleRecord, NotFoundError, Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/articles", tags=["articles"])


async def _load_article(storage: Storage, scope: TenantScope, article_id: str) -> ArticleRecord:
    article = await storage.get_article(article_id)
    # Articles of another knowledge base are indistinguishable from missing ones.
    if article is None or article.knowledge_base_id != scope.kb_id:
        raise NotFoundError("article", article_id)
    return article


async def _check_category(storage: Storage, scope: TenantScope, category_id: str | None) -> None:
    if category_id is None:
        return
    category = await storage.get_category(category_id)
    if category is None or category.knowledge_base_id != scope.kb_id:
        raise ValueError(f"Unknown category: {category_id}")


@router.get("", response_model=list[ArticleOut])
async def list_articles(
    scope: TenantScope = Depends(require_role(Role.VIEWER)),
    storage: Storage = Depends(get_storage),
) -> list[ArticleRecord]:
    return await storage.list_articles(scope.kb_id)


@router.post("", response_model=ArticleOut, status_code=201)
async def create_article(
    payload: ArticleCreate,
    scope: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
    storage: Storage = Depends(get_storage),
) -> ArticleRecord:
    await _check_category(storage, scope, payload.category_id)
    article = await storage.create_article(
        scope.kb_id,
        title=payload.title,
        content=payload.content,
        category_id=payload.category_id,
        is_public=payload.is_public,
    )
    logger.info("Article %s created in %s by %s", article.id, scope.kb_id, scope.user_id)
    return article


@router.get("/{article_id}", response_model=ArticleOut)
async def get_article(
    article_id: str,
    scope: TenantScope = Depends(require_role(Role.VIEWER)),
    storage: Storage = Depends(get_storage),
) -> ArticleRecord:
    return await _load_article(storage, scope, article_id)


@router.put("/{article_id}", response_model=ArticleOut)
async def update_article(
    article_id: str,
    payload: ArticleUpdate,
    scope: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
    storage: Storage = Depends(get_storage),
) -> ArticleRecord:
    await _load_article(storage, scope, article_id)
    fields = payload.model_dump(exclude_unset=True)
    await _check_category(storage, scope, fields.get("category_id"))
    return await storage.update_article(article_id, **fields)


@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: str,
    scope: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
    storage: Storage = Depends(get_storage),
) -> Response:
    await _load_article(storage, scope, article_id)
    await storage.delete_article(article_id)
    logger.info("Article %s deleted from %s by %s", article_id, scope.kb_id, scope.user_id)
    return Response(status_code=204)
