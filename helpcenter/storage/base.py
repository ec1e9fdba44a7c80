"""
Persistence interface for Help Center.

Routes talk to a :class:`Storage`; the backends are interchangeable:
    - InMemoryStorage: Dict-backed, for tests and local development
    - DatabaseStorage: SQLAlchemy async sessions against PostgreSQL

Records returned by storage are plain dataclasses so callers never hold
ORM instances across session boundaries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from helpcenter.multitenancy.membership import Role


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotFoundError(LookupError):
    """Raised when a record does not exist.

    Attributes:
        resource: The kind of record, e.g. ``"article"``.
        record_id: The id that was looked up.
    """

    def __init__(self, resource: str, record_id: str):
        self.resource = resource
        self.record_id = record_id
        super().__init__(f"{resource.capitalize()} not found: {record_id}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "not_found",
            "resource": self.resource,
            "id": self.record_id,
            "message": str(self),
        }


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class KnowledgeBaseRecord:
    id: str
    owner_id: str
    display_name: str
    logo_url: str | None = None
    primary_color: str = "#3B82F6"
    custom_domain: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class MembershipRecord:
    """A knowledge base together with the caller's role in it."""

    knowledge_base: KnowledgeBaseRecord
    role: Role


@dataclass
class TeamMemberRecord:
    id: str
    knowledge_base_id: str
    role: Role
    status: str = "active"
    user_id: str | None = None
    email: str | None = None
    invite_token: str | None = None
    invited_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class CategoryRecord:
    id: str
    knowledge_base_id: str
    name: str
    description: str | None = None
    order: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ArticleRecord:
    id: str
    knowledge_base_id: str
    title: str
    content: str = ""
    category_id: str | None = None
    is_public: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ApiKeyRecord:
    """A knowledge-base API key. Only the prefix and a hash of the secret are kept."""

    id: str
    knowledge_base_id: str
    name: str
    prefix: str
    hashed_key: str
    scopes: list[str] = field(default_factory=lambda: ["read"])
    created_by: str | None = None
    rate_limit_override: int | None = None
    usage_count: int = 0
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None


@dataclass
class IntegrationRecord:
    id: str
    knowledge_base_id: str
    type: str
    enabled: bool = False
    config: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class Storage(ABC):
    """Async persistence operations used by the API."""

    # --- Knowledge bases ---

    @abstractmethod
    async def create_knowledge_base(self, owner_id: str, display_name: str) -> KnowledgeBaseRecord:
        """Create a knowledge base and record ``owner_id`` as its owner."""

    @abstractmethod
    async def get_knowledge_base(self, kb_id: str) -> KnowledgeBaseRecord | None:
        ...

    @abstractmethod
    async def update_knowledge_base(self, kb_id: str, **fields: Any) -> KnowledgeBaseRecord:
        ...

    @abstractmethod
    async def list_memberships(self, user_id: str) -> list[MembershipRecord]:
        """Knowledge bases ``user_id`` actively belongs to, oldest first."""

    @abstractmethod
    async def get_member_role(self, kb_id: str, user_id: str) -> Role | None:
        """The user's role in the knowledge base, or None if not an active member."""

    # --- Team ---

    @abstractmethod
    async def list_team_members(self, kb_id: str) -> list[TeamMemberRecord]:
        ...

    @abstractmethod
    async def get_team_member(self, member_id: str) -> TeamMemberRecord | None:
        ...

    @abstractmethod
    async def create_invite(
        self, kb_id: str, email: str, role: Role, invited_by: str
    ) -> TeamMemberRecord:
        ...

    @abstractmethod
    async def accept_invite(self, token: str, user_id: str) -> TeamMemberRecord | None:
        """Activate a pending invitation for ``user_id``; None if the token is unknown."""

    @abstractmethod
    async def update_team_member_role(self, member_id: str, role: Role) -> TeamMemberRecord:
        ...

    @abstractmethod
    async def delete_team_member(self, member_id: str) -> None:
        ...

    # --- Categories ---

    @abstractmethod
    async def list_categories(self, kb_id: str) -> list[CategoryRecord]:
        ...

    @abstractmethod
    async def get_category(self, category_id: str) -> CategoryRecord | None:
        ...

    @abstractmethod
    async def create_category(
        self, kb_id: str, name: str, description: str | None = None, order: int = 0
    ) -> CategoryRecord:
        ...

    @abstractmethod
    async def update_category(self, category_id: str, **fields: Any) -> CategoryRecord:
        ...

    @abstractmethod
    async def delete_category(self, category_id: str) -> None:
        """Delete a category; its articles become uncategorised."""

    # --- Articles ---

    @abstractmethod
    async def list_articles(self, kb_id: str) -> list[ArticleRecord]:
        """Articles of a knowledge base, most recently updated first."""

    @abstractmethod
    async def get_article(self, article_id: str) -> ArticleRecord | None:
        ...

    @abstractmethod
    async def create_article(
        self,
        kb_id: str,
        title: str,
        content: str = "",
        category_id: str | None = None,
        is_public: bool = False,
    ) -> ArticleRecord:
        ...

    @abstractmethod
    async def update_article(self, article_id: str, **fields: Any) -> ArticleRecord:
        ...

    @abstractmethod
    async def delete_article(self, article_id: str) -> None:
        ...

    @abstractmethod
    async def search_articles(
        self, kb_id: str, query: str, public_only: bool = True
    ) -> list[ArticleRecord]:
        """Articles whose title or content contains ``query``, case-insensitively.

        Only public articles match unless ``public_only`` is False.
        """

    # --- Analytics ---

    @abstractmethod
    async def track_view(self, article_id: str) -> None:
        ...

    @abstractmethod
    async def article_view_stats(self, kb_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def track_search(self, kb_id: str, query: str) -> None:
        ...

    @abstractmethod
    async def search_stats(self, kb_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def submit_feedback(self, article_id: str, is_helpful: bool) -> None:
        ...

    # --- Integrations ---

    @abstractmethod
    async def list_integrations(self, kb_id: str) -> list[IntegrationRecord]:
        ...

    @abstractmethod
    async def get_integration(self, kb_id: str, integration_type: str) -> IntegrationRecord | None:
        ...

    @abstractmethod
    async def upsert_integration(
        self, kb_id: str, integration_type: str, enabled: bool, config: dict[str, Any]
    ) -> IntegrationRecord:
        ...


    # --- API keys ---

    @abstractmethod
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
        ...

    @abstractmethod
    async def list_api_keys(self, kb_id: str) -> list[ApiKeyRecord]:
        ...

    @abstractmethod
    async def get_api_key(self, key_id: str) -> ApiKeyRecord | None:
        ...

    @abstractmethod
    async def get_api_key_by_prefix(self, prefix: str) -> ApiKeyRecord | None:
        ...

    @abstractmethod
    async def revoke_api_key(self, key_id: str) -> ApiKeyRecord:
        ...

    @abstractmethod
    async def record_api_key_usage(self, key_id: str) -> None:
        ...


TOP_SEARCHES_LIMIT = 10

KNOWLEDGE_BASE_FIELDS = frozenset({"display_name", "logo_url", "primary_color", "custom_domain"})
ARTICLE_FIELDS = frozenset({"title", "content", "category_id", "is_public"})
CATEGORY_FIELDS = frozenset({"name", "description", "order"})


def check_fields(fields: dict[str, Any], allowed: frozenset[str]) -> None:
    """Reject updates to fields outside ``allowed``.

    Raises:
        ValueError: If an unknown or read-only field is present.
    """
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
