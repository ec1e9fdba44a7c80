"""API key management for a knowledge base. Admins and owners only."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Response

from helpcenter.api.api_keys import generate_api_key, hash_api_key
from helpcenter.api.dependencies import TenantScope, get_storage, require_role
from helpcenter.api.schemas import ApiKeyCreate, ApiKeyCreated, ApiKeyOut
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import ApiKeyRecord, NotFoundError, Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/api-keys", tags=["api-keys"])


@router.get("", response_model=list[ApiKeyOut])
async def list_api_keys(
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> list[ApiKeyRecord]:
    return await storage.list_api_keys(scope.kb_id)


@router.post("", response_model=ApiKeyCreated, status_code=201)
async def create_api_key(
    payload: ApiKeyCreate,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> ApiKeyCreated:
    generated = generate_api_key()
    record = await storage.create_api_key(
        scope.kb_id,
        payload.name,
        prefix=generated.prefix,
        hashed_key=hash_api_key(generated.secret),
        scopes=list(dict.fromkeys(payload.scopes)),
        created_by=scope.user_id,
        rate_limit_override=payload.rate_limit_override,
    )
    logger.info("Created API key %s for %s", record.prefix, scope.kb_id)
    return ApiKeyCreated(**asdict(record), key=generated.full_key)


@router.delete("/{key_id}", status_code=204)
async def revoke_api_key(
    key_id: str,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> Response:
    key = await storage.get_api_key(key_id)
    if key is None or key.knowledge_base_id != scope.kb_id:
        raise NotFoundError("api key", key_id)
    await storage.revoke_api_key(key_id)
    logger.info("Revoked API key %s for %s", key.prefix, scope.kb_id)
    return Response(status_code=204)
