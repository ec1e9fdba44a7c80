"""Tenant-scoped integration endpoints (ServiceNow)."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import APIRouter, Depends

from helpcenter.api.dependencies import TenantScope, get_storage, require_role
from helpcenter.api.schemas import (
    ConnectionTestResult,
    IntegrationOut,
    ServiceNowSettings,
    ServiceNowTest,
    SyncResult,
)
from helpcenter.config.settings import settings
from helpcenter.integrations.servicenow import ServiceNowService, get_servicenow_credentials
from helpcenter.multitenancy.membership import Role
from helpcenter.storage.base import IntegrationRecord, Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations", tags=["integrations"])

SERVICENOW = "servicenow"

ServiceNowFactory = Callable[[str], ServiceNowService | None]


def get_servicenow_factory() -> ServiceNowFactory:
    """Return a builder for ServiceNow clients; it yields None without credentials."""

    def build(instance_url: str) -> ServiceNowService | None:
        credentials = get_servicenow_credentials(settings)
        if credentials is None:
            return None
        return ServiceNowService(instance_url, credentials, timeout=settings.SERVICENOW_TIMEOUT)

    return build


@router.get("", response_model=list[IntegrationOut])
async def list_integrations(
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> list[IntegrationRecord]:
    return await storage.list_integrations(scope.kb_id)


@router.put("/servicenow", response_model=IntegrationOut)
async def configure_servicenow(
    payload: ServiceNowSettings,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
) -> IntegrationRecord:
    config = payload.model_dump(by_alias=True, exclude={"enabled"})
    integration = await storage.upsert_integration(scope.kb_id, SERVICENOW, payload.enabled, config)
    logger.info("ServiceNow integration for %s set enabled=%s", scope.kb_id, payload.enabled)
    return integration


@router.post("/servicenow/test", response_model=ConnectionTestResult)
async def test_servicenow(
    payload: ServiceNowTest,
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    factory: ServiceNowFactory = Depends(get_servicenow_factory),
) -> ConnectionTestResult:
    service = factory(payload.instance_url)
    if service is None:
        return ConnectionTestResult(success=False, message="ServiceNow credentials are not configured")
    async with service:
        result = await service.test_connection()
    return ConnectionTestResult(**result)


@router.post("/servicenow/sync", response_model=SyncResult)
async def sync_servicenow(
    scope: TenantScope = Depends(require_role(Role.ADMIN)),
    storage: Storage = Depends(get_storage),
    factory: ServiceNowFactory = Depends(get_servicenow_factory),
) -> SyncResult:
    integration = await storage.get_integration(scope.kb_id, SERVICENOW)
    if integration is None or not integration.enabled:
        raise ValueError("ServiceNow integration is not enabled")
    instance_url = integration.config.get("instanceUrl")
    servicenow_kb_id = integration.config.get("knowledgeBaseId")
    if not instance_url or not servicenow_kb_id:
        raise ValueError("ServiceNow instance URL and knowledge base ID are required")

    service = factory(instance_url)
    if service is None:
        raise ValueError("ServiceNow credentials are not configured")
    articles = await storage.list_articles(scope.kb_id)
    async with service:
        outcome = await service.sync_articles(articles, servicenow_kb_id)
    return SyncResult(**outcome.to_dict())
