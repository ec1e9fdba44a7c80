"""
Knowledge-base tenancy for Help Center sessions.

This module decides which knowledge base is active for a session and
keeps every tenant-scoped request and cached result aligned with it:
- Membership and role models
- Durable selection storage
- Tenant resolution with convergence and readiness tracking
- One-time provisioning of a default knowledge base
- Request scoping and tenant-tagged caching

Key Components:
    - KnowledgeBaseMembership: A knowledge base the caller can access
    - Role: OWNER, ADMIN, CONTRIBUTOR, VIEWER
    - TenantResolver: Owns the active selection for one session
    - ProvisioningGuard: At-most-once default knowledge base creation
    - TenantScopedCache: Results tagged by the tenant they belong to
    - scope_url: Adds the ``kbId`` query parameter to a request path

Example:
    from helpcenter.multitenancy import (
        FileSelectionStore, TenantResolver, TenantScopedCache,
    )

    cache = TenantScopedCache()
    resolver = TenantResolver(client, FileSelectionStore(path))
    resolver.register_cache(cache)
    await resolver.start()

    url = resolver.scope_url("/api/articles")  # "/api/articles?kbId=..."
"""

from helpcenter.multitenancy.membership import (
    ActiveSelection,
    KnowledgeBaseMembership,
    Role,
)
from helpcenter.multitenancy.selection_store import (
    SELECTED_KB_KEY,
    FileSelectionStore,
    InMemorySelectionStore,
    SelectionStore,
)
from helpcenter.multitenancy.scoping import (
    KB_ID_PARAM,
    USER_HEADER,
    ScopedResource,
    TenantScopedCache,
    scope_url,
)
from helpcenter.multitenancy.provisioning import (
    DEFAULT_KNOWLEDGE_BASE_NAME,
    ProvisioningGuard,
)
from helpcenter.multitenancy.resolver import (
    KnowledgeBaseDirectory,
    LoadState,
    ResolverEvent,
    ResolverEventType,
    TenantResolver,
)

__all__ = [
    # Models
    "ActiveSelection",
    "KnowledgeBaseMembership",
    "Role",
    # Selection storage
    "SELECTED_KB_KEY",
    "FileSelectionStore",
    "InMemorySelectionStore",
    "SelectionStore",
    # Scoping
    "KB_ID_PARAM",
    "USER_HEADER",
    "ScopedResource",
    "TenantScopedCache",
    "scope_url",
    # Provisioning
    "DEFAULT_KNOWLEDGE_BASE_NAME",
    "ProvisioningGuard",
    # Resolution
    "KnowledgeBaseDirectory",
    "LoadState",
    "ResolverEvent",
    "ResolverEventType",
    "TenantResolver",
]
