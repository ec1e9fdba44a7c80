"""
Active knowledge-base resolution for a Help Center session.

The TenantResolver answers "which knowledge base is active right now"
for one session. It loads the caller's memberships, reconciles them with
the persisted selection, provisions a default knowledge base for users
who have none, and scopes every tenant-sensitive request to the result.

Evaluation Order:
    Every state change is followed by the same fixed sequence:
    1. Membership list update
    2. Selection convergence
    3. Readiness recomputation
    4. Provisioning check

Convergence Rules:
    1. Empty list: no selection is forced
    2. Persisted selection present in the list: keep it
    3. No selection, or selection absent from the list: select the first
       listed knowledge base
    4. The chosen selection is persisted whenever it changes

Example:
    resolver = TenantResolver(client, FileSelectionStore(path))
    resolver.register_cache(cache)

    async with resolver:
        if resolver.is_ready:
            url = resolver.scope_url("/api/articles")
        resolver.select_tenant("kb2")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Sequence

from helpcenter.multitenancy.membership import (
    ActiveSelection,
    KnowledgeBaseMembership,
)
from helpcenter.multitenancy.provisioning import (
    DEFAULT_KNOWLEDGE_BASE_NAME,
    ProvisioningGuard,
)
from helpcenter.multitenancy.scoping import TenantScopedCache, scope_url
from helpcenter.multitenancy.selection_store import SELECTED_KB_KEY, SelectionStore

logger = logging.getLogger(__name__)


class KnowledgeBaseDirectory(Protocol):
    """Collaborator that lists and creates knowledge bases for an identity."""

    async def list_knowledge_bases(self) -> list[KnowledgeBaseMembership]:
        ...

    async def create_knowledge_base(self, display_name: str) -> KnowledgeBaseMembership:
        ...


class LoadState(str, Enum):
    """Lifecycle of the membership list fetch."""

    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ResolverEventType(str, Enum):
    """State changes published to resolver subscribers."""

    MEMBERSHIPS_LOADED = "memberships_loaded"
    MEMBERSHIPS_FAILED = "memberships_failed"
    TENANT_SWITCHED = "tenant_switched"
    READINESS_CHANGED = "readiness_changed"
    PROVISIONING_STARTED = "provisioning_started"
    PROVISIONING_SUCCEEDED = "provisioning_succeeded"
    PROVISIONING_FAILED = "provisioning_failed"


@dataclass(frozen=True)
class ResolverEvent:
    """A state change notification.

    Attributes:
        type: What happened.
        selected_id: The active selection after the change.
        previous_id: The selection before a TENANT_SWITCHED change.
        ready: Readiness after the change.
        error: The failure for *_FAILED events.
    """

    type: ResolverEventType
    selected_id: str | None
    previous_id: str | None = None
    ready: bool = False
    error: Exception | None = None


ResolverListener = Callable[[ResolverEvent], None]


class TenantResolver:
    """Owns the active knowledge-base selection for one session.

    Constructed at session start and closed at session end. The
    persisted selection is read once at construction; afterwards the
    resolver is the only writer of the selection slot.

    Load and provisioning failures never propagate out of the resolver.
    They are exposed through :attr:`error` and the corresponding events.

    Attributes:
        _directory: Membership listing and creation collaborator.
        _store: Durable selection storage.
        _guard: Auto-provisioning guard for this session.
        _memberships: The loaded list, or None before the first load.
        _selected_id: The current selection, persisted or not yet valid.
    """

    def __init__(
        self,
        directory: KnowledgeBaseDirectory,
        store: SelectionStore,
        default_name: str = DEFAULT_KNOWLEDGE_BASE_NAME,
        storage_key: str = SELECTED_KB_KEY,
    ):
        self._directory = directory
        self._store = store
        self._storage_key = storage_key
        self._guard = ProvisioningGuard(directory.create_knowledge_base, default_name)

        self._selected_id: str | None = store.get(storage_key)
        self._memberships: list[KnowledgeBaseMembership] | None = None
        self._load_state = LoadState.IDLE
        self._load_error: Exception | None = None
        self._ready = False
        self._closed = False

        self._caches: list[TenantScopedCache] = []
        self._listeners: list[ResolverListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "TenantResolver":
        """Load memberships and converge. Safe to await once per session."""
        await self.refresh()
        return self

    def close(self) -> None:
        """Tear down the session: drop subscribers and cached results."""
        if self._closed:
            return
        self._closed = True
        for cache in self._caches:
            cache.clear()
        self._caches.clear()
        self._listeners.clear()
        logger.debug("Tenant resolver closed (selection=%s)", self._selected_id)

    async def __aenter__(self) -> "TenantResolver":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Tenant resolver is closed")

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def memberships(self) -> Sequence[KnowledgeBaseMembership]:
        return tuple(self._memberships or ())

    @property
    def load_state(self) -> LoadState:
        return self._load_state

    @property
    def selected_id(self) -> str | None:
        """The raw selection, which may not be valid yet."""
        return self._selected_id

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def is_loading(self) -> bool:
        """True during the initial list load or while provisioning."""
        initial_load = self._load_state is LoadState.LOADING and self._memberships is None
        return initial_load or self._guard.pending

    @property
    def is_creating(self) -> bool:
        return self._guard.pending

    @property
    def provisioning_attempted(self) -> bool:
        return self._guard.attempted

    @property
    def load_error(self) -> Exception | None:
        return self._load_error

    @property
    def provisioning_error(self) -> Exception | None:
        return self._guard.error

    @property
    def error(self) -> Exception | None:
        """The most relevant failure: list load first, then provisioning."""
        return self._load_error or self._guard.error

    def get_active_tenant(self) -> ActiveSelection | None:
        """Return the active selection, or None when not ready."""
        if not self._ready or self._selected_id is None:
            return None
        return ActiveSelection(
            selected_id=self._selected_id,
            membership=self._find(self._selected_id),
        )

    @property
    def active_tenant_id(self) -> str | None:
        active = self.get_active_tenant()
        return active.selected_id if active else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: ResolverListener) -> Callable[[], None]:
        """Register a listener for resolver events.

        Args:
            listener: Called synchronously with every ResolverEvent.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def register_cache(self, cache: TenantScopedCache) -> None:
        """Attach a tenant-scoped cache to be invalidated on every switch."""
        if cache not in self._caches:
            self._caches.append(cache)

    def _emit(
        self,
        event_type: ResolverEventType,
        previous_id: str | None = None,
        error: Exception | None = None,
    ) -> None:
        event = ResolverEvent(
            type=event_type,
            selected_id=self._selected_id,
            previous_id=previous_id,
            ready=self._ready,
            error=error,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Resolver listener failed on %s", event_type.value)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Reload the membership list and re-evaluate.

        A load failure is recorded, never raised, and never treated as an
        empty list.
        """
        self._ensure_open()
        self._load_state = LoadState.LOADING
        self._recompute_readiness()

        try:
            memberships = await self._directory.list_knowledge_bases()
        except Exception as exc:
            if self._closed:
                return
            self._load_state = LoadState.FAILED
            self._load_error = exc
            logger.warning("Knowledge base list failed to load: %s", exc)
            self._recompute_readiness()
            self._emit(ResolverEventType.MEMBERSHIPS_FAILED, error=exc)
            return

        if self._closed:
            return
        self._memberships = list(memberships)
        self._load_state = LoadState.LOADED
        self._load_error = None
        logger.debug("Loaded %d knowledge bases", len(self._memberships))
        self._emit(ResolverEventType.MEMBERSHIPS_LOADED)
        await self._evaluate()

    def select_tenant(self, kb_id: str) -> None:
        """Make ``kb_id`` the active knowledge base.

        The id is persisted immediately. Cached tenant-scoped results are
        invalidated only if the value changes. An id that is absent from a
        loaded, non-empty list is overridden by convergence.

        Args:
            kb_id: The knowledge base to activate.

        Raises:
            ValueError: If ``kb_id`` is empty.
        """
        self._ensure_open()
        if not kb_id:
            raise ValueError("kb_id must not be empty")
        self._apply_selection(kb_id)
        self._converge()
        self._recompute_readiness()

    def scope_url(self, path: str) -> str:
        """Annotate ``path`` with the active knowledge base, if any."""
        return scope_url(path, self.active_tenant_id)

    def on_tenant_switch(self, previous_id: str | None, current_id: str) -> None:
        """Invalidate tenant-scoped caches after the selection changed value.

        Runs synchronously inside the selection change, so no stale
        result can be read under the new scope.
        """
        evicted = sum(cache.invalidate_except(current_id) for cache in self._caches)
        logger.info(
            "Active knowledge base switched %s -> %s (%d cached results evicted)",
            previous_id, current_id, evicted,
        )
        self._emit(ResolverEventType.TENANT_SWITCHED, previous_id=previous_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(self, kb_id: str) -> KnowledgeBaseMembership | None:
        for membership in self._memberships or ():
            if membership.id == kb_id:
                return membership
        return None

    def _apply_selection(self, kb_id: str) -> None:
        previous = self._selected_id
        self._selected_id = kb_id
        self._store.set(self._storage_key, kb_id)
        if previous != kb_id:
            self.on_tenant_switch(previous, kb_id)

    async def _evaluate(self) -> None:
        self._converge()
        self._recompute_readiness()
        await self._maybe_provision()

    def _converge(self) -> bool:
        if self._load_state is not LoadState.LOADED or not self._memberships:
            return False
        if self._selected_id is not None and self._find(self._selected_id):
            return False

        best = self._memberships[0].id
        if self._selected_id is not None:
            logger.info(
                "Knowledge base %s is no longer accessible; falling back to %s",
                self._selected_id, best,
            )
        self._apply_selection(best)
        return True

    def _recompute_readiness(self) -> None:
        # A refresh keeps the previous list, so a selection found in it
        # stays ready while the reload is in flight.
        ready = self._selected_id is not None and self._find(self._selected_id) is not None
        if ready != self._ready:
            self._ready = ready
            self._emit(ResolverEventType.READINESS_CHANGED)

    async def _maybe_provision(self) -> None:
        if self._closed or not self._guard.should_provision(
            loaded=self._load_state is LoadState.LOADED,
            empty=not self._memberships,
        ):
            return

        self._emit(ResolverEventType.PROVISIONING_STARTED)
        created = await self._guard.provision()
        if self._closed:
            return
        if created is None:
            self._recompute_readiness()
            self._emit(ResolverEventType.PROVISIONING_FAILED, error=self._guard.error)
            return

        if self._find(created.id) is None:
            self._memberships = [*(self._memberships or []), created]
        self._apply_selection(created.id)
        self._recompute_readiness()
        self._emit(ResolverEventType.PROVISIONING_SUCCEEDED)
        await self.refresh()
