"""SQLAlchemy-backed :class:`Storage`.

Each operation opens its own ``AsyncSession`` from the factory and
commits before returning, so records handed back are detached copies.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpcenter.models import (
    ApiKey,
    AnalyticsSearch,
    AnalyticsView,
    Article,
    ArticleFeedback,
    Category,
    Integration,
    KnowledgeBase,
    TeamMember,
)
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


def _kb_record(row: KnowledgeBase) -> KnowledgeBaseRecord:
    return KnowledgeBaseRecord(
        id=row.id,
        owner_id=row.owner_id,
        display_name=row.display_name,
        logo_url=row.logo_url,
        primary_color=row.primary_color,
        custom_domain=row.custom_domain,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _member_record(row: TeamMember) -> TeamMemberRecord:
    return TeamMemberRecord(
        id=row.id,
        knowledge_base_id=row.knowledge_base_id,
        role=Role(row.role),
        status=row.status,
        user_id=row.user_id,
        email=row.email,
        invite_token=row.invite_token,
        invited_by=row.invited_by,
        created_at=row.created_at,
    )


def _category_record(row: Category) -> CategoryRecord:
    return CategoryRecord(
        id=row.id,
        knowledge_base_id=row.knowledge_base_id,
        name=row.name,
        description=row.description,
        order=row.order,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _article_record(row: Article) -> ArticleRecord:
    return ArticleRecord(
        id=row.id,
        knowledge_base_id=row.knowledge_base_id,
        title=row.title,
        content=row.content,
        category_id=row.category_id,
        is_public=row.is_public,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _integration_record(row: Integration) -> IntegrationRecord:
    return IntegrationRecord(
        id=row.id,
        knowledge_base_id=row.knowledge_base_id,
        type=row.type,
        enabled=row.enabled,
        config=dict(row.config or {}),
        updated_at=row.updated_at,
    )


def _api_key_record(row: ApiKey) -> ApiKeyRecord:
    return ApiKeyRecord(
        id=row.id,
        knowledge_base_id=row.knowledge_base_id,
        name=row.name,
        prefix=row.prefix,
        hashed_key=row.hashed_key,
        scopes=list(row.scopes or []),
        created_by=row.created_by,
        rate_limit_override=row.rate_limit_override,
        usage_count=row.usage_count,
        last_used_at=row.last_used_at,
        revoked_at=row.revoked_at,
        created_at=row.created_at,
    )


class DatabaseStorage(Storage):
    """Storage on top of an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # --- Knowledge bases ---

    async def create_knowledge_base(self, owner_id: str, display_name: str) -> KnowledgeBaseRecord:
        async with self._session_factory() as session:
            kb = KnowledgeBase(owner_id=owner_id, display_name=display_name)
            session.add(kb)
            await session.flush()
            session.add(
                TeamMember(
                    knowledge_base_id=kb.id,
                    user_id=owner_id,
                    role=Role.OWNER.value,
                    status="active",
                )
            )
            await session.commit()
            logger.debug("Created knowledge base %s for %s", kb.id, owner_id)
            return _kb_record(kb)

    async def get_knowledge_base(self, kb_id: str) -> KnowledgeBaseRecord | None:
        async with self._session_factory() as session:
            row = await session.get(KnowledgeBase, kb_id)
            return _kb_record(row) if row else None

    async def update_knowledge_base(self, kb_id: str, **fields: Any) -> KnowledgeBaseRecord:
        check_fields(fields, KNOWLEDGE_BASE_FIELDS)
        async with self._session_factory() as session:
            row = await session.get(KnowledgeBase, kb_id)
            if row is None:
                raise NotFoundError("knowledge base", kb_id)
            for name, value in fields.items():
                setattr(row, name, value)
            await session.commit()
            await session.refresh(row)
            return _kb_record(row)

    async def list_memberships(self, user_id: str) -> list[MembershipRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KnowledgeBase, TeamMember.role)
                .join(TeamMember, TeamMember.knowledge_base_id == KnowledgeBase.id)
                .where(TeamMember.user_id == user_id, TeamMember.status == "active")
                .order_by(TeamMember.created_at, KnowledgeBase.created_at)
            )
            return [
                MembershipRecord(knowledge_base=_kb_record(kb), role=Role(role))
                for kb, role in result.all()
            ]

    async def get_member_role(self, kb_id: str, user_id: str) -> Role | None:
        async with self._session_factory() as session:
            role = await session.scalar(
                select(TeamMember.role).where(
                    TeamMember.knowledge_base_id == kb_id,
                    TeamMember.user_id == user_id,
                    TeamMember.status == "active",
                )
            )
            return Role(role) if role else None

    # --- Team ---

    async def list_team_members(self, kb_id: str) -> list[TeamMemberRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(TeamMember)
                .where(TeamMember.knowledge_base_id == kb_id)
                .order_by(TeamMember.created_at)
            )
            return [_member_record(row) for row in rows]

    async def get_team_member(self, member_id: str) -> TeamMemberRecord | None:
        async with self._session_factory() as session:
            row = await session.get(TeamMember, member_id)
            return _member_record(row) if row else None

    async def create_invite(
        self, kb_id: str, email: str, role: Role, invited_by: str
    ) -> TeamMemberRecord:
        async with self._session_factory() as session:
            row = TeamMember(
                knowledge_base_id=kb_id,
                email=email,
                role=role.value,
                status="pending",
                invite_token=secrets.token_urlsafe(24),
                invited_by=invited_by,
            )
            session.add(row)
            await session.commit()
            return _member_record(row)

    async def accept_invite(self, token: str, user_id: str) -> TeamMemberRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(TeamMember).where(
                    TeamMember.invite_token == token, TeamMember.status == "pending"
                )
            )
            if row is None:
                return None
            existing = await session.scalar(
                select(TeamMember.id).where(
                    TeamMember.knowledge_base_id == row.knowledge_base_id,
                    TeamMember.user_id == user_id,
                )
            )
            if existing is not None:
                raise ValueError("Already a member of this knowledge base")
            row.user_id = user_id
            row.status = "active"
            row.invite_token = None
            await session.commit()
            return _member_record(row)

    async def update_team_member_role(self, member_id: str, role: Role) -> TeamMemberRecord:
        async with self._session_factory() as session:
            row = await session.get(TeamMember, member_id)
            if row is None:
                raise NotFoundError("team member", member_id)
            row.role = role.value
            await session.commit()
            return _member_record(row)

    async def delete_team_member(self, member_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(TeamMember).where(TeamMember.id == member_id))
            await session.commit()

    # --- Categories ---

    async def list_categories(self, kb_id: str) -> list[CategoryRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(Category)
                .where(Category.knowledge_base_id == kb_id)
                .order_by(Category.order)
            )
            return [_category_record(row) for row in rows]

    async def get_category(self, category_id: str) -> CategoryRecord | None:
        async with self._session_factory() as session:
            row = await session.get(Category, category_id)
            return _category_record(row) if row else None

    async def create_category(
        self, kb_id: str, name: str, description: str | None = None, order: int = 0
    ) -> CategoryRecord:
        async with self._session_factory() as session:
            row = Category(knowledge_base_id=kb_id, name=name, description=description, order=order)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _category_record(row)

    async def update_category(self, category_id: str, **fields: Any) -> CategoryRecord:
        check_fields(fields, CATEGORY_FIELDS)
        async with self._session_factory() as session:
            row = await session.get(Category, category_id)
            if row is None:
                raise NotFoundError("category", category_id)
            for name, value in fields.items():
                setattr(row, name, value)
            await session.commit()
            await session.refresh(row)
            return _category_record(row)

    async def delete_category(self, category_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Article).where(Article.category_id == category_id).values(category_id=None)
            )
            await session.execute(delete(Category).where(Category.id == category_id))
            await session.commit()

    # --- Articles ---

    async def list_articles(self, kb_id: str) -> list[ArticleRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(Article)
                .where(Article.knowledge_base_id == kb_id)
                .order_by(Article.updated_at.desc())
            )
            return [_article_record(row) for row in rows]

    async def get_article(self, article_id: str) -> ArticleRecord | None:
        async with self._session_factory() as session:
            row = await session.get(Article, article_id)
            return _article_record(row) if row else None

    async def create_article(
        self,
        kb_id: str,
        title: str,
        content: str = "",
        category_id: str | None = None,
        is_public: bool = False,
    ) -> ArticleRecord:
        async with self._session_factory() as session:
            row = Article(
                knowledge_base_id=kb_id,
                title=title,
                content=content,
                category_id=category_id,
                is_public=is_public,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _article_record(row)

    async def update_article(self, article_id: str, **fields: Any) -> ArticleRecord:
        check_fields(fields, ARTICLE_FIELDS)
        async with self._session_factory() as session:
            row = await session.get(Article, article_id)
            if row is None:
                raise NotFoundError("article", article_id)
            for name, value in fields.items():
                setattr(row, name, value)
            await session.commit()
            await session.refresh(row)
            return _article_record(row)

    async def delete_article(self, article_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(Article).where(Article.id == article_id))
            await session.commit()

    async def search_articles(
        self, kb_id: str, query: str, public_only: bool = True
    ) -> list[ArticleRecord]:
        pattern = f"%{query}%"
        stmt = select(Article).where(
            Article.knowledge_base_id == kb_id,
            or_(Article.title.ilike(pattern), Article.content.ilike(pattern)),
        )
        if public_only:
            stmt = stmt.where(Article.is_public.is_(True))
        async with self._session_factory() as session:
            rows = await session.scalars(stmt.order_by(Article.updated_at.desc()))
            return [_article_record(row) for row in rows]

    # --- Analytics ---

    async def track_view(self, article_id: str) -> None:
        async with self._session_factory() as session:
            if await session.get(Article, article_id) is None:
                raise NotFoundError("article", article_id)
            session.add(AnalyticsView(article_id=article_id))
            await session.commit()

    async def article_view_stats(self, kb_id: str) -> dict[str, Any]:
        views = func.count(AnalyticsView.id)
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalyticsView.article_id, Article.title, views)
                .join(Article, AnalyticsView.article_id == Article.id)
                .where(Article.knowledge_base_id == kb_id)
                .group_by(AnalyticsView.article_id, Article.title)
                .order_by(views.desc())
            )
            rows = result.all()
        return {
            "totalViews": sum(count for _, _, count in rows),
            "recentViews": [
                {"articleId": article_id, "articleTitle": title, "views": count}
                for article_id, title, count in rows
            ],
        }

    async def track_search(self, kb_id: str, query: str) -> None:
        async with self._session_factory() as session:
            session.add(AnalyticsSearch(knowledge_base_id=kb_id, query=query))
            await session.commit()

    async def search_stats(self, kb_id: str) -> dict[str, Any]:
        count = func.count(AnalyticsSearch.id)
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count(AnalyticsSearch.id)).where(
                    AnalyticsSearch.knowledge_base_id == kb_id
                )
            )
            result = await session.execute(
                select(AnalyticsSearch.query, count)
                .where(AnalyticsSearch.knowledge_base_id == kb_id)
                .group_by(AnalyticsSearch.query)
                .order_by(count.desc())
                .limit(TOP_SEARCHES_LIMIT)
            )
            rows = result.all()
        return {
            "totalSearches": total or 0,
            "recentSearches": [{"query": query, "count": n} for query, n in rows],
        }

    async def submit_feedback(self, article_id: str, is_helpful: bool) -> None:
        async with self._session_factory() as session:
            if await session.get(Article, article_id) is None:
                raise NotFoundError("article", article_id)
            session.add(ArticleFeedback(article_id=article_id, is_helpful=is_helpful))
            await session.commit()

    # --- Integrations ---

    async def list_integrations(self, kb_id: str) -> list[IntegrationRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(Integration).where(Integration.knowledge_base_id == kb_id)
            )
            return [_integration_record(row) for row in rows]

    async def get_integration(self, kb_id: str, integration_type: str) -> IntegrationRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(Integration).where(
                    Integration.knowledge_base_id == kb_id,
                    Integration.type == integration_type,
                )
            )
            return _integration_record(row) if row else None

    async def upsert_integration(
        self, kb_id: str, integration_type: str, enabled: bool, config: dict[str, Any]
    ) -> IntegrationRecord:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(Integration).where(
                    Integration.knowledge_base_id == kb_id,
                    Integration.type == integration_type,
                )
            )
            if row is None:
                row = Integration(knowledge_base_id=kb_id, type=integration_type)
                session.add(row)
            row.enabled = enabled
            row.config = dict(config)
            await session.commit()
            await session.refresh(row)
            return _integration_record(row)

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
        async with self._session_factory() as session:
            row = ApiKey(
                knowledge_base_id=kb_id,
                name=name,
                prefix=prefix,
                hashed_key=hashed_key,
                scopes=list(scopes),
                created_by=created_by,
                rate_limit_override=rate_limit_override,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _api_key_record(row)

    async def list_api_keys(self, kb_id: str) -> list[ApiKeyRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ApiKey)
                .where(ApiKey.knowledge_base_id == kb_id)
                .order_by(ApiKey.created_at)
            )
            return [_api_key_record(row) for row in rows]

    async def get_api_key(self, key_id: str) -> ApiKeyRecord | None:
        async with self._session_factory() as session:
            row = await session.get(ApiKey, key_id)
            return _api_key_record(row) if row else None

    async def get_api_key_by_prefix(self, prefix: str) -> ApiKeyRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(select(ApiKey).where(ApiKey.prefix == prefix))
            return _api_key_record(row) if row else None

    async def revoke_api_key(self, key_id: str) -> ApiKeyRecord:
        async with self._session_factory() as session:
            row = await session.get(ApiKey, key_id)
            if row is None:
                raise NotFoundError("api key", key_id)
            if row.revoked_at is None:
                row.revoked_at = utcnow()
                await session.commit()
                await session.refresh(row)
            return _api_key_record(row)

    async def record_api_key_usage(self, key_id: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ApiKey)
                .where(ApiKey.id == key_id)
                .values(usage_count=ApiKey.usage_count + 1, last_used_at=utcnow())
            )
            if result.rowcount == 0:
                raise NotFoundError("api key", key_id)
            await session.commit()
