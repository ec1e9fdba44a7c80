"""Knowledge-base directory endpoints: list the caller's memberships, create, update."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from helpcenter.api.dependencies import (
    PermissionDeniedError,
    get_current_user_id,
    get_storage,
)
from helpcenter.api.schemas import KnowledgeBaseCreate, KnowledgeBaseOut, KnowledgeBaseUpdate
from helpcenter.config.settings import settings
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge-bases", tags=["knowledge-bases"])


@router.get("", response_model=list[KnowledgeBaseOut])
async def list_knowledge_bases(
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
) -> list[KnowledgeBaseOut]:
    """Knowledge bases the caller belongs to, in creation order, with their role."""
    memberships = await storage.list_memberships(user_id)
    return [
        KnowledgeBaseOut(**asdict(m.knowledge_base), role=m.role)
        for m in memberships
    ]


@router.post("", response_model=KnowledgeBaseOut, status_code=201)
async def create_knowledge_base(
    payload: KnowledgeBaseCreate,
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
) -> KnowledgeBaseOut:
    display_name = (payload.display_name or "").strip() or settings.DEFAULT_KNOWLEDGE_BASE_NAME
    kb = await storage.create_knowledge_base(user_id, display_name)
    logger.info("User %s created knowledge base %s (%s)", user_id, kb.id, display_name)
    return KnowledgeBaseOut(**asdict(kb), role=Role.OWNER)


@router.put("/{kb_id}", response_model=KnowledgeBaseOut)
async def update_knowledge_base(
    kb_id: str,
    payload: KnowledgeBaseUpdate,
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
) -> KnowledgeBaseOut:
    role = await storage.get_member_role(kb_id, user_id)
    if role is None:
        raise HTTPException(status_code=403, detail="Access denied to this knowledge base")
    if not role.at_least(Role.ADMIN):
        raise PermissionDeniedError(kb_id, role, Role.ADMIN)

    kb = await storage.update_knowledge_base(kb_id, **payload.model_dump(exclude_unset=True))
    return KnowledgeBaseOut(**asdict(kb), role=role)
