"""Public help-center endpoints.

These serve published content to anonymous readers and record their
views, searches and feedback. No identity or membership is required;
only articles marked public are ever returned.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from helpcenter.api.dependencies import get_storage
from helpcenter.api.schemas import (
    ArticleOut,
    CategoryOut,
    FeedbackCreate,
    PublicKnowledgeBaseOut,
    SearchTrack,
    ViewTrack,
)
from helpcenter.storage.base import (
    ArticleRecord,
    CategoryRecord,
    KnowledgeBaseRecord,
    NotFoundError,
    Storage,
)

router = APIRouter(tags=["public"])


async def _load_knowledge_base(storage: Storage, kb_id: str) -> KnowledgeBaseRecord:
    kb = await storage.get_knowledge_base(kb_id)
    if kb is None:
        raise NotFoundError("knowledge base", kb_id)
    return kb


async def _load_public_article(storage: Storage, article_id: str) -> ArticleRecord:
    article = await storage.get_article(article_id)
    if article is None or not article.is_public:
        raise NotFoundError("article", article_id)
    return article


@router.get("/api/kb/{kb_id}", response_model=PublicKnowledgeBaseOut)
async def get_public_knowledge_base(
    kb_id: str, storage: Storage = Depends(get_storage)
) -> KnowledgeBaseRecord:
    return await _load_knowledge_base(storage, kb_id)


@router.get("/api/kb/{kb_id}/articles", response_model=list[ArticleOut])
async def list_public_articles(
    kb_id: str, storage: Storage = Depends(get_storage)
) -> list[ArticleRecord]:
    await _load_knowledge_base(storage, kb_id)
    return [a for a in await storage.list_articles(kb_id) if a.is_public]


@router.get("/api/kb/{kb_id}/articles/{article_id}", response_model=ArticleOut)
async def get_public_article(
    kb_id: str, article_id: str, storage: Storage = Depends(get_storage)
) -> ArticleRecord:
    article = await _load_public_article(storage, article_id)
    if article.knowledge_base_id != kb_id:
        raise NotFoundError("article", article_id)
    return article


@router.get("/api/kb/{kb_id}/categories", response_model=list[CategoryOut])
async def list_public_categories(
    kb_id: str, storage: Storage = Depends(get_storage)
) -> list[CategoryRecord]:
    await _load_knowledge_base(storage, kb_id)
    return await storage.list_categories(kb_id)


@router.get("/api/kb/{kb_id}/search", response_model=list[ArticleOut])
async def search_public_articles(
    kb_id: str,
    q: str = Query(..., min_length=1, max_length=512),
    storage: Storage = Depends(get_storage),
) -> list[ArticleRecord]:
    await _load_knowledge_base(storage, kb_id)
    return await storage.search_articles(kb_id, q)


@router.post("/api/kb/{kb_id}/search", response_model=list[ArticleOut])
async def track_public_search(
    kb_id: str, payload: SearchTrack, storage: Storage = Depends(get_storage)
) -> list[ArticleRecord]:
    """Record a reader's search and return its results."""
    await _load_knowledge_base(storage, kb_id)
    await storage.track_search(kb_id, payload.query)
    return await storage.search_articles(kb_id, payload.query)


@router.post("/api/analytics/views", status_code=204)
async def track_view(payload: ViewTrack, storage: Storage = Depends(get_storage)) -> Response:
    await _load_public_article(storage, payload.article_id)
    await storage.track_view(payload.article_id)
    return Response(status_code=204)


@router.post("/api/articles/{article_id}/feedback", status_code=204)
async def submit_feedback(
    article_id: str, payload: FeedbackCreate, storage: Storage = Depends(get_storage)
) -> Response:
    await _load_public_article(storage, article_id)
    await storage.submit_feedback(article_id, payload.is_helpful)
    return Response(status_code=204)
