"""
Auto-provisioning of a default knowledge base for first-time users.

A user who can access zero knowledge bases gets exactly one created on
their behalf. The guard owns a per-session attempt flag that is set the
instant a creation request is dispatched and never reset, even when the
request fails. A fresh attempt is only possible in a new session.

Example:
    guard = ProvisioningGuard(directory.create_knowledge_base)
    if guard.should_provision(loaded=True, empty=True):
        created = await guard.provision()
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from helpcenter.multitenancy.membership import KnowledgeBaseMembership

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_BASE_NAME = "My Knowledge Base"

CreateKnowledgeBase = Callable[[str], Awaitable[KnowledgeBaseMembership]]


class ProvisioningGuard:
    """At-most-once creation of a default knowledge base per session.

    The check-and-set in :meth:`provision` happens before the first
    suspension point, so under cooperative scheduling two evaluation
    passes can never both dispatch a creation request.

    Attributes:
        _create: Collaborator call that creates a knowledge base.
        _display_name: Name given to the provisioned knowledge base.
        _attempted: Set once a creation request has been dispatched.
        _pending: True while the creation request is in flight.
        _error: The failure of the attempt, if it failed.
    """

    def __init__(
        self,
        create: CreateKnowledgeBase,
        display_name: str = DEFAULT_KNOWLEDGE_BASE_NAME,
    ):
        self._create = create
        self._display_name = display_name
        self._attempted = False
        self._pending = False
        self._error: Exception | None = None

    @property
    def display_name(self) -> str:
        return self._display_name

    @property
    def attempted(self) -> bool:
        return self._attempted

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def error(self) -> Exception | None:
        return self._error

    def should_provision(self, *, loaded: bool, empty: bool) -> bool:
        """Decide whether a creation request may be issued now.

        Args:
            loaded: The membership list finished loading successfully.
                A failed load is not an empty list.
            empty: The loaded list contains no knowledge bases.

        Returns:
            True when all preconditions hold and no attempt was made yet.
        """
        return loaded and empty and not self._pending and not self._attempted

    async def provision(self) -> KnowledgeBaseMembership | None:
        """Issue the single creation request for this session.

        Returns:
            The created knowledge base, or None if an attempt was already
            made or the request failed. A failure is recorded in
            :attr:`error` and is never retried.
        """
        if self._attempted or self._pending:
            return None
        self._attempted = True
        self._pending = True

        logger.info("Provisioning default knowledge base %r", self._display_name)
        try:
            created = await self._create(self._display_name)
        except Exception as exc:
            self._error = exc
            logger.error("Default knowledge base provisioning failed: %s", exc)
            return None
        finally:
            self._pending = False

        logger.info("Provisioned default knowledge base %s", created.id)
        return created
