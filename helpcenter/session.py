"""
Client-side Help Center session.

A KnowledgeBaseSession ties one identity's API client to a tenant
resolver and a tenant-tagged result cache. Every tenant-scoped read or
write goes through the resolver's active knowledge base; when none is
active the session refuses to dispatch the call instead of sending an
unscoped request.

Example:
    client = HelpCenterClient(settings.API_BASE_URL, "user-1")
    async with KnowledgeBaseSession(client, FileSelectionStore(path)) as session:
        for article in await session.articles():
            print(article["title"])
        session.select("kb2")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from helpcenter.client import HelpCenterClient
from helpcenter.config.settings import Settings, settings as default_settings
from helpcenter.multitenancy.membership import Role
from helpcenter.multitenancy.provisioning import DEFAULT_KNOWLEDGE_BASE_NAME
from helpcenter.multitenancy.resolver import TenantResolver
from helpcenter.multitenancy.scoping import ScopedResource, TenantScopedCache, scope_url
from helpcenter.multitenancy.selection_store import FileSelectionStore, SelectionStore

logger = logging.getLogger(__name__)


class TenantNotReadyError(RuntimeError):
    """Raised when a tenant-scoped call is attempted with no active tenant.

    Attributes:
        path: The request path that was refused.
        cause: The resolver's recorded failure, if any.
    """

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        message = f"No active knowledge base for {path}"
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "tenant_not_ready",
            "path": self.path,
            "cause": str(self.cause) if self.cause else None,
        }


class KnowledgeBaseSession:
    """One identity's view of the Help Center, scoped to one knowledge base.

    Attributes:
        client: The API client used for every call.
        resolver: Owns the active knowledge-base selection.
        cache: Tenant-tagged cache of read results.
    """

    def __init__(
        self,
        client: HelpCenterClient,
        store: SelectionStore,
        default_name: str = DEFAULT_KNOWLEDGE_BASE_NAME,
    ):
        self.client = client
        self.cache = TenantScopedCache()
        self.resolver = TenantResolver(client, store, default_name=default_name)
        self.resolver.register_cache(self.cache)

    @classmethod
    def from_settings(
        cls,
        user_id: str,
        config: Settings | None = None,
        selection_file: Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "KnowledgeBaseSession":
        """Build a session from application settings.

        Args:
            user_id: Identity to act as.
            config: Settings to use; the module-level settings by default.
            selection_file: Overrides ``SELECTION_FILE``.
            transport: Optional httpx transport, e.g. for an in-process app.
        """
        config = config or default_settings
        client = HelpCenterClient(config.API_BASE_URL, user_id, transport=transport)
        store = FileSelectionStore(selection_file or config.SELECTION_FILE)
        return cls(client, store, default_name=config.DEFAULT_KNOWLEDGE_BASE_NAME)

    async def start(self) -> "KnowledgeBaseSession":
        await self.resolver.start()
        return self

    async def close(self) -> None:
        self.resolver.close()
        await self.client.close()

    async def __aenter__(self) -> "KnowledgeBaseSession":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()

    # --- Selection ---

    @property
    def active_tenant_id(self) -> str | None:
        return self.resolver.active_tenant_id

    def select(self, kb_id: str) -> None:
        self.resolver.select_tenant(kb_id)

    def _require_tenant(self, path: str) -> str:
        kb_id = self.resolver.active_tenant_id
        if kb_id is None:
            raise TenantNotReadyError(path, self.resolver.error)
        return kb_id

    # --- Reads ---

    async def _read(self, path: str) -> Any:
        kb_id = self._require_tenant(path)
        url = scope_url(path, kb_id)
        cached = self.cache.get(kb_id, url)
        if cached is not None:
            return cached

        value = await self.client.get_json(url)
        # A switch during the fetch already evicted this tenant's entries.
        if self.resolver.active_tenant_id == kb_id:
            self.cache.put(kb_id, url, value)
        return value

    async def articles(self) -> list[dict[str, Any]]:
        return await self._read(ScopedResource.ARTICLES.value)

    async def article(self, article_id: str) -> dict[str, Any]:
        return await self._read(f"{ScopedResource.ARTICLES.value}/{article_id}")

    async def categories(self) -> list[dict[str, Any]]:
        return await self._read(ScopedResource.CATEGORIES.value)

    async def team_members(self) -> list[dict[str, Any]]:
        return await self._read(ScopedResource.TEAM_MEMBERS.value)

    async def analytics(self, kind: str = "views") -> dict[str, Any]:
        if kind not in ("views", "searches"):
            raise ValueError(f"Unknown analytics kind: {kind}")
        return await self._read(f"{ScopedResource.ANALYTICS.value}/{kind}")

    # --- Writes ---

    async def _write(self, resource: ScopedResource, path: str, body: dict[str, Any]) -> Any:
        kb_id = self._require_tenant(path)
        result = await self.client.post_json(scope_url(path, kb_id), body)
        self.cache.invalidate_resource(resource)
        return result

    async def create_article(
        self,
        title: str,
        content: str,
        category_id: str | None = None,
        is_public: bool = False,
    ) -> dict[str, Any]:
        return await self._write(
            ScopedResource.ARTICLES,
            ScopedResource.ARTICLES.value,
            {
                "title": title,
                "content": content,
                "categoryId": category_id,
                "isPublic": is_public,
            },
        )

    async def create_category(self, name: str, description: str | None = None) -> dict[str, Any]:
        return await self._write(
            ScopedResource.CATEGORIES,
            ScopedResource.CATEGORIES.value,
            {"name": name, "description": description},
        )

    async def invite_member(self, email: str, role: Role = Role.VIEWER) -> dict[str, Any]:
        return await self._write(
            ScopedResource.TEAM_MEMBERS,
            "/api/team/invite",
            {"email": email, "role": role.value},
        )
