"""
Request scoping and tenant-tagged caching for Help Center.

Every tenant-scoped request carries the active knowledge-base id as the
``kbId`` query parameter. Results fetched under one knowledge base are
cached with that id as a tag, so switching knowledge bases is a
mechanical eviction of every entry carrying a different tag.

Scoped Resources:
    - ARTICLES: ``/api/articles``
    - CATEGORIES: ``/api/categories``
    - TEAM_MEMBERS: ``/api/team/members``
    - ANALYTICS: ``/api/analytics``

Example:
    scope_url("/api/articles", "kb1")
    # -> "/api/articles?kbId=kb1"

    cache = TenantScopedCache()
    cache.put("kb1", "/api/articles?kbId=kb1", [...])
    cache.invalidate_except("kb2")  # evicts the kb1 entry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import quote

logger = logging.getLogger(__name__)

KB_ID_PARAM = "kbId"
USER_HEADER = "X-User-Id"


class ScopedResource(str, Enum):
    """Tenant-scoped API resources and their path prefixes."""

    ARTICLES = "/api/articles"
    CATEGORIES = "/api/categories"
    TEAM_MEMBERS = "/api/team/members"
    ANALYTICS = "/api/analytics"

    @classmethod
    def for_path(cls, path: str) -> "ScopedResource | None":
        """Return the resource a request path belongs to, if any."""
        bare = path.split("?", 1)[0]
        for resource in cls:
            if bare == resource.value or bare.startswith(resource.value + "/"):
                return resource
        return None


def scope_url(path: str, kb_id: str | None) -> str:
    """Annotate a request path with a knowledge-base id.

    The id is appended as the ``kbId`` query parameter. An existing
    query string is preserved and extended.

    Args:
        path: The collaborator-bound request path.
        kb_id: The active knowledge-base id, or None.

    Returns:
        The scoped path, or ``path`` unchanged when ``kb_id`` is None.
    """
    if not kb_id:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{KB_ID_PARAM}={quote(kb_id, safe='')}"


@dataclass
class CacheEntry:
    """A cached result tagged with the tenant it was fetched under."""

    tenant_id: str
    resource: ScopedResource | None
    value: Any
    fetched_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class TenantScopedCache:
    """Key-tagged cache for tenant-scoped results.

    Entries are keyed by the scoped request path and tagged with the
    knowledge-base id they belong to. A lookup only hits when the tag
    matches the requested tenant, so data fetched under one knowledge
    base can never be served for another.

    Attributes:
        _entries: Mapping of cache key to entry.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, tenant_id: str, key: str) -> Any | None:
        """Return a cached value for ``key`` fetched under ``tenant_id``."""
        entry = self._entries.get(key)
        if entry is None or entry.tenant_id != tenant_id:
            return None
        return entry.value

    def put(self, tenant_id: str, key: str, value: Any) -> None:
        """Cache ``value`` under ``key`` tagged with ``tenant_id``."""
        self._entries[key] = CacheEntry(
            tenant_id=tenant_id,
            resource=ScopedResource.for_path(key),
            value=value,
        )

    def invalidate_except(self, tenant_id: str | None) -> int:
        """Evict every entry not tagged with ``tenant_id``.

        Args:
            tenant_id: The tenant whose entries survive. None evicts all.

        Returns:
            Number of entries evicted.
        """
        stale = [
            key for key, entry in self._entries.items()
            if entry.tenant_id != tenant_id
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(
                "Evicted %d cached entries outside tenant %s", len(stale), tenant_id
            )
        return len(stale)

    def invalidate_resource(self, resource: ScopedResource) -> int:
        """Evict every entry belonging to one resource, for all tenants."""
        stale = [
            key for key, entry in self._entries.items()
            if entry.resource is resource
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
