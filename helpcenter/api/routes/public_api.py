"""
Versioned REST API for integrating a knowledge base into other systems.

Every route authenticates with an API key, and the key alone decides
which knowledge base is served. Unlike the anonymous help-center routes,
private articles are visible here; callers narrow with ``is_public``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from helpcenter.api.api_keys import ApiKeyScope, ApiKeyScopeName, require_api_key
from helpcenter.api.dependencies import get_storage
from helpcenter.api.schemas import (
    Pagination,
    V1Article,
    V1ArticleEnvelope,
    V1ArticleList,
    V1Category,
    V1CategoryEnvelope,
    V1CategoryList,
    V1KnowledgeBase,
    V1KnowledgeBaseEnvelope,
    V1SearchResults,
)
from helpcenter.storage.base import NotFoundError, Storage

router = APIRouter(prefix="/api/v1", tags=["public-api"])

read_access = require_api_key(ApiKeyScopeName.READ)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
MAX_SEARCH_RESULTS = 50
DEFAULT_SEARCH_RESULTS = 20


@router.get("/articles", response_model=V1ArticleList)
async def list_articles(
    category_id: str | None = Query(default=None),
    is_public: bool | None = Query(default=None),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(default=0, ge=0),
    api: ApiKeyScope = Depends(read_access),
    storage: Storage = Depends(get_storage),
) -> V1ArticleList:
    articles = await storage.list_articles(api.kb_id)
    if category_id:
        articles = [a for a in articles if a.category_id == category_id]
    if is_public is not None:
        articles = [a for a in articles if a.is_public is is_public]

    limit = min(limit, MAX_PAGE_SIZE)
    page = articles[offset:offset + limit]
    return V1ArticleList(
        data=[V1Article.model_validate(a) for a in page],
        pagination=Pagination(
            total=len(articles),
            limit=limit,
            offset=offset,
            has_more=offset + limit < len(articles),
        ),
    )


@router.get("/articles/{article_id}", response_model=V1ArticleEnvelope)
async def get_article(
    article_id: str,
    api: ApiKeyScope = Depends(read_access),
    storage: Storage = Depends(get_storage),
) -> V1ArticleEnvelope:
    article = await storage.get_article(article_id)
    if article is None or article.knowledge_base_id != api.kb_id:
        raise NotFoundError("article", article_id)
    return V1ArticleEnvelope(data=V1Article.model_validate(article))


@router.get("/categories", response_model=V1CategoryList)
async def list_categories(
    api: ApiKeyScope = Depends(read_access),
    storage: Storage = Depends(get_storage),
) -> V1CategoryList:
    categories = await storage.list_categories(api.kb_id)
    return V1CategoryList(data=[V1Category.model_validate(c) for c in categories])


@router.get("/categories/{category_id}", response_model=V1CategoryEnvelope)
async def get_category(
    category_id: str,
    api: ApiKeyScope = Depends(read_access),
    storage: Storage = Depends(get_storage),
) -> V1CategoryEnvelope:
    category = await storage.get_category(category_id)
    if category is None or category.knowledge_base_id != api.kb_id:
        raise NotFoundError("category", category_id)
    return V1CategoryEnvelope(data=V1Category.model_validate(category))


@router.get("/search", response_model=V1SearchResults)
async def search_articles(
    q: str | None = Query(default=None, max_length=512),
    is_public: bool | None = Query(default=None),
    limit: int = Query(default=DEFAULT_SEARCH_RESULTS, ge=1),
    api: ApiKeyScope = Depends(read_access),
    storage: Storage = Depends(get_storage),
) -> V1SearchResults:
    if not q:
        raise ValueError("Query parameter 'q' is required")
    results = await storage.search_articles(api.kb_id, q, public_only=False)
    if is_public is not None:
        results = [a for a in results if a.is_public is is_public]
    results = results[:min(limit, MAX_SEARCH_RESULTS)]
    return V1SearchResults(
        data=[V1Article.model_validate(a) for a in results],
        query=q,
        total=len(results),
    )


@router.get("/knowledge-base", response_model=V1KnowledgeBaseEnvelope)
async def get_knowledge_base(
    api: ApiKeyScope = Depends(read_access),
    storage: Storage = Depends(get_storage),
) -> V1KnowledgeBaseEnvelope:
    kb = await storage.get_knowledge_base(api.kb_id)
    if kb is None:
        raise NotFoundError("knowledge base", api.kb_id)
    return V1KnowledgeBaseEnvelope(
        data=V1KnowledgeBase(id=kb.id, title=kb.display_name, primary_color=kb.primary_color)
    )
