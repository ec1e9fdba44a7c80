"""Team membership endpoints: members, invitations and roles."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from helpcenter.api.dependencies import (
    PermissionDeniedError,
    TenantScope,
    get_current_user_id,
    get_email_service,
    get_storage,
    require_role,
)
from helpcenter.api.schemas import (
    InviteAccept,
    InviteCreate,
    InviteOut,
    RoleUpdate,
    TeamMemberOut,
)
from helpcenter.integrations.email import EmailService
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import NotFoundError, Storage, TeamMemberRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/team", tags=["team"])


async def _load_member(storage: Storage, scope: TenantScope, member_id: str) -> TeamMemberRecord:
    member = await storage.get_team_member(member_id)
    if member is None or member.knowledge_base_id != scope.kb_id:
        raise NotFoundError("team member", member_id)
    return member


@router.get("/members", response_model=list[TeamMemberOut])
async def list_members(
    scope: TenantScope = Depends(require_role(Role.VIEWER)),
    storage: Storage = Depends(get_storage),
) -> list[TeamMemberRecord]:
    return await storage.list_team_members(scope.kb_id)


@router.post("/invite", response_model=InviteOut, status_code=201)
async def invite_member(
    payload: InviteCreate,
    request: Request,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
    email: EmailService = Depends(get_email_service),
) -> InviteOut:
    if payload.role is Role.ADMIN and scope.role is not Role.OWNER:
        raise PermissionDeniedError(
            scope.kb_id, scope.role, Role.OWNER, "Only the owner can grant the admin role"
        )

    member = await storage.create_invite(scope.kb_id, payload.email, payload.role, scope.user_id)
    invite_url = f"{str(request.base_url).rstrip('/')}/invite/{member.invite_token}"
    logger.info("Invited %s to %s as %s", payload.email, scope.kb_id, payload.role.value)

    kb = await storage.get_knowledge_base(scope.kb_id)
    result = await email.send_team_invite(
        to_email=payload.email,
        inviter_name=scope.user_id,
        knowledge_base_name=kb.display_name if kb else "a knowledge base",
        role=payload.role.value,
        invite_url=invite_url,
    )
    if not result.success:
        logger.warning("Invite email to %s not delivered: %s", payload.email, result.error)
    return InviteOut(**asdict(member), invite_url=invite_url, email_sent=result.success)


@router.post("/invite/accept", response_model=TeamMemberOut)
async def accept_invite(
    payload: InviteAccept,
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
) -> TeamMemberRecord:
    member = await storage.accept_invite(payload.token, user_id)
    if member is None:
        raise HTTPException(status_code=404, detail="Invitation not found or already used")
    logger.info("User %s joined %s as %s", user_id, member.knowledge_base_id, member.role.value)
    return member


@router.put("/{member_id}/role", response_model=TeamMemberOut)
async def update_member_role(
    member_id: str,
    payload: RoleUpdate,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> TeamMemberRecord:
    member = await _load_member(storage, scope, member_id)
    if member.role is Role.OWNER:
        raise PermissionDeniedError(
            scope.kb_id, scope.role, Role.OWNER, "The owner's role cannot be changed"
        )
    if payload.role is Role.OWNER:
        raise ValueError("Ownership cannot be granted")
    if payload.role is Role.ADMIN and scope.role is not Role.OWNER:
        raise PermissionDeniedError(
            scope.kb_id, scope.role, Role.OWNER, "Only the owner can grant the admin role"
        )
    return await storage.update_team_member_role(member_id, payload.role)


@router.delete("/{member_id}", status_code=204)
async def remove_member(
    member_id: str,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> Response:
    member = await _load_member(storage, scope, member_id)
    if member.role is Role.OWNER:
        raise PermissionDeniedError(
            scope.kb_id, scope.role, Role.OWNER, "The owner cannot be removed"
        )
    await storage.delete_team_member(member_id)
    logger.info("Removed member %s from %s", member_id, scope.kb_id)
    return Response(status_code=204)
