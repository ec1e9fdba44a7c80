"""Request / response models for the Help Center API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from helpcenter.multitenancy.membership import Role


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Knowledge bases
# ---------------------------------------------------------------------------


class KnowledgeBaseCreate(CamelModel):
    display_name: str | None = Field(default=None, max_length=256)


class KnowledgeBaseUpdate(CamelModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=256)
    logo_url: str | None = None
    primary_color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    custom_domain: str | None = None


class KnowledgeBaseOut(CamelModel):
    id: str
    owner_id: str
    display_name: str
    logo_url: str | None = None
    primary_color: str
    custom_domain: str | None = None
    created_at: datetime
    updated_at: datetime
    role: Role | None = None


class PublicKnowledgeBaseOut(CamelModel):
    id: str
    display_name: str
    logo_url: str | None = None
    primary_color: str


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


class ArticleCreate(CamelModel):
    title: str = Field(min_length=1, max_length=512)
    content: str = ""
    category_id: str | None = None
    is_public: bool = False


class ArticleUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=512)
    content: str | None = None
    category_id: str | None = None
    is_public: bool | None = None


class ArticleOut(CamelModel):
    id: str
    knowledge_base_id: str
    title: str
    content: str
    category_id: str | None = None
    is_public: bool
    created_at: datetime
    updated_at: datetime


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = None
    order: int = 0


class CategoryUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    order: int | None = None


class CategoryOut(CamelModel):
    id: str
    knowledge_base_id: str
    name: str
    description: str | None = None
    order: int
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


class TeamMemberOut(CamelModel):
    id: str
    knowledge_base_id: str
    user_id: str | None = None
    email: str | None = None
    role: Role
    status: str
    invited_by: str | None = None
    created_at: datetime


class InviteCreate(CamelModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Role = Role.VIEWER

    @field_validator("role")
    @classmethod
    def _not_owner(cls, v: Role) -> Role:
        if v is Role.OWNER:
            raise ValueError("Cannot invite a member as owner")
        return v


class InviteOut(TeamMemberOut):
    invite_url: str
    email_sent: bool = False


class InviteAccept(CamelModel):
    token: str = Field(min_length=1)


class RoleUpdate(CamelModel):
    role: Role


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class ViewTrack(CamelModel):
    article_id: str


class SearchTrack(CamelModel):
    query: str = Field(min_length=1, max_length=512)


class FeedbackCreate(CamelModel):
    is_helpful: bool


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------


class IntegrationOut(CamelModel):
    id: str
    knowledge_base_id: str
    type: str
    enabled: bool
    config: dict[str, Any]
    updated_at: datetime


class ServiceNowSettings(CamelModel):
    instance_url: str = Field(min_length=1)
    knowledge_base_id: str | None = None
    incident_form_enabled: bool = False
    auto_sync: bool = False
    enabled: bool = False


class ServiceNowTest(CamelModel):
    instance_url: str = Field(min_length=1)


class ConnectionTestResult(CamelModel):
    success: bool
    message: str


class SyncResult(CamelModel):
    synced: int
    failed: int
    errors: list[str]


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


class ApiKeyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=256)
    scopes: list[Literal["read", "write"]] = Field(default_factory=lambda: ["read"], min_length=1)
    rate_limit_override: int | None = Field(default=None, ge=1)


class ApiKeyOut(CamelModel):
    id: str
    knowledge_base_id: str
    name: str
    prefix: str
    scopes: list[str]
    created_by: str | None = None
    rate_limit_override: int | None = None
    usage_count: int
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None
    created_at: datetime


class ApiKeyCreated(ApiKeyOut):
    """Returned once at creation; ``key`` is never retrievable again."""

    key: str


# ---------------------------------------------------------------------------
# Public REST API (/api/v1)
# ---------------------------------------------------------------------------


class V1Article(CamelModel):
    id: str
    title: str
    content: str
    category_id: str | None = None
    is_public: bool
    created_at: datetime
    updated_at: datetime


class V1Category(CamelModel):
    id: str
    name: str
    order: int


class V1KnowledgeBase(CamelModel):
    id: str
    title: str
    primary_color: str


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class V1ArticleList(CamelModel):
    data: list[V1Article]
    pagination: Pagination


class V1ArticleEnvelope(CamelModel):
    data: V1Article


class V1CategoryList(CamelModel):
    data: list[V1Category]


class V1CategoryEnvelope(CamelModel):
    data: V1Category


class V1SearchResults(CamelModel):
    data: list[V1Article]
    query: str
    total: int


class V1KnowledgeBaseEnvelope(CamelModel):
    data: V1KnowledgeBase
