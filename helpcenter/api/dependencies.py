"""
FastAPI dependencies for identity and knowledge-base scoping.

Identity is asserted by the upstream gateway in the ``X-User-Id``
header. Tenant-scoped routes additionally require the ``kbId`` query
parameter and an active membership in that knowledge base.

Failure modes:
    - No identity: 401
    - Missing ``kbId``: 400
    - Not a member: 403
    - Member with too low a role: 403 (PermissionDeniedError)

Example:
    @router.post("")
    async def create_article(
        payload: ArticleCreate,
        tenant: TenantScope = Depends(require_role(Role.CONTRIBUTOR)),
        storage: Storage = Depends(get_storage),
    ):
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, Query, Request

from helpcenter.integrations.email import EmailService
from helpcenter.multitenancy.membership import Role
from helpcenter.multitenancy.scoping import KB_ID_PARAM, USER_HEADER
from helpcenter.storage.base import Storage

logger = logging.getLogger(__name__)


class PermissionDeniedError(PermissionError):
    """Raised when a member's role is below what an operation requires.

    Attributes:
        kb_id: The knowledge base the operation targeted.
        role: The caller's role.
        required: The minimum role for the operation.
    """

    def __init__(self, kb_id: str, role: Role, required: Role, message: str | None = None):
        self.kb_id = kb_id
        self.role = role
        self.required = required
        super().__init__(
            message or f"Role '{role.value}' cannot perform this action; requires '{required.value}'"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "permission_denied",
            "kb_id": self.kb_id,
            "role": self.role.value,
            "required": self.required.value,
            "message": str(self),
        }


@dataclass(frozen=True)
class TenantScope:
    """The knowledge base a request is scoped to, and who is asking.

    Attributes:
        kb_id: The knowledge base from the ``kbId`` query parameter.
        user_id: The caller's identity.
        role: The caller's role in ``kb_id``.
    """

    kb_id: str
    user_id: str
    role: Role

    def require(self, minimum: Role) -> None:
        """Raise PermissionDeniedError unless the caller holds ``minimum``."""
        if not self.role.at_least(minimum):
            raise PermissionDeniedError(self.kb_id, self.role, minimum)


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


async def get_current_user_id(
    user_id: str | None = Header(default=None, alias=USER_HEADER),
) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


async def get_tenant_scope(
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
    kb_id: str | None = Query(default=None, alias=KB_ID_PARAM),
) -> TenantScope:
    if not kb_id:
        raise HTTPException(status_code=400, detail="Knowledge base ID required")

    role = await storage.get_member_role(kb_id, user_id)
    if role is None:
        logger.info("Denied user=%s access to kb_id=%s", user_id, kb_id)
        raise HTTPException(status_code=403, detail="Access denied to this knowledge base")
    return TenantScope(kb_id=kb_id, user_id=user_id, role=role)


def require_role(minimum: Role) -> Callable[..., Awaitable[TenantScope]]:
    """Build a dependency that resolves the tenant scope and enforces a role."""

    async def dependency(scope: TenantScope = Depends(get_tenant_scope)) -> TenantScope:
        scope.require(minimum)
        return scope

    return dependency
