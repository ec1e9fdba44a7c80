"""Dict-backed :class:`Storage` for tests and local development."""

from __future__ import annotations

import logging
import secrets
import uuid
from collections import Counter
from dataclasses import replace
from typing import Any

from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import (
    ARTICLE_FIELDS,
    CATEGORY_FIELDS,
    KNOWLEDGE_BASE_FIELDS,
    TOP_SEARCHES_LIMIT,
    ApiKeyRecord,
    ArticleRecord,
    CategoryRecord,
    IntegrationRecord,
    KnowledgeBaseRecord,
    MembershipRecord,
    NotFoundError,
    Storage,
    TeamMemberRecord,
    check_fields,
    utcnow,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryStorage(Storage):
    """Storage kept entirely in process memory.

    Dicts preserve insertion order, which stands in for creation order.
    """

    def __init__(self) -> None:
        self._knowledge_bases: dict[str, KnowledgeBaseRecord] = {}
        self._members: dict[str, TeamMemberRecord] = {}
        self._categories: dict[str, CategoryRecord] = {}
        self._articles: dict[str, ArticleRecord] = {}
        self._integrations: dict[str, IntegrationRecord] = {}
        self._api_keys: dict[str, ApiKeyRecord] = {}
        self._views: list[str] = []
        self._searches: list[tuple[str, str]] = []
        self._feedback: list[tuple[str, bool]] = []

    # --- Knowledge bases ---

    async def create_knowledge_base(self, owner_id: str, display_name: str) -> KnowledgeBaseRecord:
        kb = KnowledgeBaseRecord(id=_new_id(), owner_id=owner_id, display_name=display_name)
        self._knowledge_bases[kb.id] = kb
        owner = TeamMemberRecord(
            id=_new_id(), knowledge_base_id=kb.id, role=Role.OWNER, user_id=owner_id
        )
        self._members[owner.id] = owner
        logger.debug("Created knowledge base %s for %s", kb.id, owner_id)
        return kb

    async def get_knowledge_base(self, kb_id: str) -> KnowledgeBaseRecord | None:
        return self._knowledge_bases.get(kb_id)

    async def update_knowledge_base(self, kb_id: str, **fields: Any) -> KnowledgeBaseRecord:
        check_fields(fields, KNOWLEDGE_BASE_FIELDS)
        kb = self._knowledge_bases.get(kb_id)
        if kb is None:
            raise NotFoundError("knowledge base", kb_id)
        updated = replace(kb, **fields, updated_at=utcnow())
        self._knowledge_bases[kb_id] = updated
        return updated

    async def list_memberships(self, user_id: str) -> list[MembershipRecord]:
        return [
            MembershipRecord(knowledge_base=self._knowledge_bases[m.knowledge_base_id], role=m.role)
            for m in self._members.values()
            if m.user_id == user_id and m.is_active and m.knowledge_base_id in self._knowledge_bases
        ]

    async def get_member_role(self, kb_id: str, user_id: str) -> Role | None:
        for member in self._members.values():
            if member.knowledge_base_id == kb_id and member.user_id == user_id and member.is_active:
                return member.role
        return None

    # --- Team ---

    async def list_team_members(self, kb_id: str) -> list[TeamMemberRecord]:
        return [m for m in self._members.values() if m.knowledge_base_id == kb_id]

    async def get_team_member(self, member_id: str) -> TeamMemberRecord | None:
        return self._members.get(member_id)

    async def create_invite(
        self, kb_id: str, email: str, role: Role, invited_by: str
    ) -> TeamMemberRecord:
        member = TeamMemberRecord(
            id=_new_id(),
            knowledge_base_id=kb_id,
            role=role,
            status="pending",
            email=email,
            invite_token=secrets.token_urlsafe(24),
            invited_by=invited_by,
        )
        self._members[member.id] = member
        return member

    async def accept_invite(self, token: str, user_id: str) -> TeamMemberRecord | None:
        for member in self._members.values():
            if member.invite_token == token and member.status == "pending":
                existing = await self.get_member_role(member.knowledge_base_id, user_id)
                if existing is not None:
                    raise ValueError("Already a member of this knowledge base")
                accepted = replace(member, user_id=user_id, status="active", invite_token=None)
                self._members[member.id] = accepted
                return accepted
        return None

    async def update_team_member_role(self, member_id: str, role: Role) -> TeamMemberRecord:
        member = self._members.get(member_id)
        if member is None:
            raise NotFoundError("team member", member_id)
        updated = replace(member, role=role)
        self._members[member_id] = updated
        return updated

    async def delete_team_member(self, member_id: str) -> None:
        self._members.pop(member_id, None)

    # --- Categories ---

    async def list_categories(self, kb_id: str) -> list[CategoryRecord]:
        found = [c for c in self._categories.values() if c.knowledge_base_id == kb_id]
        return sorted(found, key=lambda c: c.order)

    async def get_category(self, category_id: str) -> CategoryRecord | None:
        return self._categories.get(category_id)

    async def create_category(
        self, kb_id: str, name: str, description: str | None = None, order: int = 0
    ) -> CategoryRecord:
        category = CategoryRecord(
            id=_new_id(), knowledge_base_id=kb_id, name=name, description=description, order=order
        )
        self._categories[category.id] = category
        return category

    async def update_category(self, category_id: str, **fields: Any) -> CategoryRecord:
        check_fields(fields, CATEGORY_FIELDS)
        category = self._categories.get(category_id)
        if category is None:
            raise NotFoundError("category", category_id)
        updated = replace(category, **fields, updated_at=utcnow())
        self._categories[category_id] = updated
        return updated

    async def delete_category(self, category_id: str) -> None:
        self._categories.pop(category_id, None)
        for article_id, article in list(self._articles.items()):
            if article.category_id == category_id:
                self._articles[article_id] = replace(article, category_id=None)

    # --- Articles ---

    async def list_articles(self, kb_id: str) -> list[ArticleRecord]:
        found = [a for a in self._articles.values() if a.knowledge_base_id == kb_id]
        # Stable sort over reversed insertion order: newest first on ties.
        return sorted(reversed(found), key=lambda a: a.updated_at, reverse=True)

    async def get_article(self, article_id: str) -> ArticleRecord | None:
        return self._articles.get(article_id)

    async def create_article(
        self,
        kb_id: str,
        title: str,
        content: str = "",
        category_id: str | None = None,
        is_public: bool = False,
    ) -> ArticleRecord:
        article = ArticleRecord(
            id=_new_id(),
            knowledge_base_id=kb_id,
            title=title,
            content=content,
            category_id=category_id,
            is_public=is_public,
        )
        self._articles[article.id] = article
        return article

    async def update_article(self, article_id: str, **fields: Any) -> ArticleRecord:
        check_fields(fields, ARTICLE_FIELDS)
        article = self._articles.get(article_id)
        if article is None:
            raise NotFoundError("article", article_id)
        updated = replace(article, **fields, updated_at=utcnow())
        self._articles[article_id] = updated
        return updated

    async def delete_article(self, article_id: str) -> None:
        self._articles.pop(article_id, None)
        self._views = [v for v in self._views if v != article_id]
        self._feedback = [f for f in self._feedback if f[0] != article_id]

    async def search_articles(
        self, kb_id: str, query: str, public_only: bool = True
    ) -> list[ArticleRecord]:
        needle = query.lower()
        return [
            a for a in await self.list_articles(kb_id)
            if (a.is_public or not public_only) and (needle in a.title.lower() or needle in a.content.lower())
        ]

    # --- Analytics ---

    async def track_view(self, article_id: str) -> None:
        if article_id not in self._articles:
            raise NotFoundError("article", article_id)
        self._views.append(article_id)

    async def article_view_stats(self, kb_id: str) -> dict[str, Any]:
        counts = Counter(
            v for v in self._views
            if self._articles.get(v) and self._articles[v].knowledge_base_id == kb_id
        )
        return {
            "totalViews": sum(counts.values()),
            "recentViews": [
                {
                    "articleId": article_id,
                    "articleTitle": self._articles[article_id].title,
                    "views": views,
                }
                for article_id, views in counts.most_common()
            ],
        }

    async def track_search(self, kb_id: str, query: str) -> None:
        self._searches.append((kb_id, query))

    async def search_stats(self, kb_id: str) -> dict[str, Any]:
        counts = Counter(q for k, q in self._searches if k == kb_id)
        return {
            "totalSearches": sum(counts.values()),
            "recentSearches": [
                {"query": query, "count": count}
                for query, count in counts.most_common(TOP_SEARCHES_LIMIT)
            ],
        }

    async def submit_feedback(self, article_id: str, is_helpful: bool) -> None:
        if article_id not in self._articles:
            raise NotFoundError("article", article_id)
        self._feedback.append((article_id, is_helpful))

    # --- Integrations ---

    async def list_integrations(self, kb_id: str) -> list[IntegrationRecord]:
        return [i for i in self._integrations.values() if i.knowledge_base_id == kb_id]

    async def get_integration(self, kb_id: str, integration_type: str) -> IntegrationRecord | None:
        for integration in self._integrations.values():
            if integration.knowledge_base_id == kb_id and integration.type == integration_type:
                return integration
        return None

    async def upsert_integration(
        self, kb_id: str, integration_type: str, enabled: bool, config: dict[str, Any]
    ) -> IntegrationRecord:
        existing = await self.get_integration(kb_id, integration_type)
        if existing is None:
            record = IntegrationRecord(
                id=_new_id(),
                knowledge_base_id=kb_id,
                type=integration_type,
                enabled=enabled,
                config=dict(config),
            )
        else:
            record = replace(existing, enabled=enabled, config=dict(config), updated_at=utcnow())
        self._integrations[record.id] = record
        return record

    # --- API keys ---

    async def create_api_key(
        self,
        kb_id: str,
        name: str,
        prefix: str,
        hashed_key: str,
        scopes: list[str],
        created_by: str | None = None,
        rate_limit_override: int | None = None,
    ) -> ApiKeyRecord:
        key = ApiKeyRecord(
            id=_new_id(),
            knowledge_base_id=kb_id,
            name=name,
            prefix=prefix,
            hashed_key=hashed_key,
            scopes=list(scopes),
            created_by=created_by,
            rate_limit_override=rate_limit_override,
        )
        self._api_keys[key.id] = key
        return key

    async def list_api_keys(self, kb_id: str) -> list[ApiKeyRecord]:
        return [k for k in self._api_keys.values() if k.knowledge_base_id == kb_id]

    async def get_api_key(self, key_id: str) -> ApiKeyRecord | None:
        return self._api_keys.get(key_id)

    async def get_api_key_by_prefix(self, prefix: str) -> ApiKeyRecord | None:
        for key in self._api_keys.values():
            if key.prefix == prefix:
                return key
        return None

    async def revoke_api_key(self, key_id: str) -> ApiKeyRecord:
        key = self._api_keys.get(key_id)
        if key is None:
            raise NotFoundError("api key", key_id)
        if key.revoked_at is None:
            key = replace(key, revoked_at=utcnow())
            self._api_keys[key_id] = key
        return key

    async def record_api_key_usage(self, key_id: str) -> None:
        key = self._api_keys.get(key_id)
        if key is None:
            raise NotFoundError("api key", key_id)
        self._api_keys[key_id] = replace(
            key, usage_count=key.usage_count + 1, last_used_at=utcnow()
        )
