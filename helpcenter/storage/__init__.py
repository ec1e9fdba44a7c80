"""Help Center persistence backends."""

from helpcenter.storage.base import (
    ApiKeyRecord,
    ArticleRecord,
    CategoryRecord,
    IntegrationRecord,
    KnowledgeBaseRecord,
    MembershipRecord,
    NotFoundError,
    Storage,
    TeamMemberRecord,
)
from helpcenter.storage.memory import InMemoryStorage

__all__ = [
    "ApiKeyRecord",
    "ArticleRecord",
    "CategoryRecord",
    "InMemoryStorage",
    "IntegrationRecord",
    "KnowledgeBaseRecord",
    "MembershipRecord",
    "NotFoundError",
    "Storage",
    "TeamMemberRecord",
]
