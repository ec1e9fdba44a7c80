"""SQLAlchemy models for Help Center persistence."""

from helpcenter.models.knowledge_base import (
    AnalyticsSearch,
    AnalyticsView,
    ApiKey,
    Article,
    ArticleFeedback,
    Category,
    Integration,
    KnowledgeBase,
    TeamMember,
)

__all__ = [
    "AnalyticsSearch",
    "AnalyticsView",
    "ApiKey",
    "Article",
    "ArticleFeedback",
    "Category",
    "Integration",
    "KnowledgeBase",
    "TeamMember",
]
