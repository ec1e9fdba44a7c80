"""
ServiceNow integration for Help Center.

Pushes articles into a ServiceNow knowledge base, files incidents and
builds pre-filled incident form links through the ServiceNow Table API
(``{instance}/api/now/table/...``) with basic authentication.

Failures of individual operations are reported in their results rather
than raised, so a batch sync keeps going past a bad article.

Example:
    credentials = get_servicenow_credentials()
    if credentials:
        async with ServiceNowService("https://acme.service-now.com", credentials) as snow:
            outcome = await snow.sync_articles(articles, "kb_sys_id")
            print(outcome.synced, outcome.failed)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable
from urllib.parse import urlencode

import httpx

from helpcenter.config.settings import Settings, settings as default_settings
from helpcenter.storage.base import ArticleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceNowCredentials:
    username: str
    password: str


class ServiceNowError(Exception):
    """Raised when the ServiceNow API cannot be reached or answers non-2xx.

    Attributes:
        status_code: HTTP status, or 0 when no response was received.
        body: Response text, if any.
    """

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"ServiceNow API error: {status_code} - {body}")


@dataclass
class ArticleSyncResult:
    success: bool
    sys_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "sysId": self.sys_id, "error": self.error}


@dataclass
class BatchSyncResult:
    synced: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"synced": self.synced, "failed": self.failed, "errors": list(self.errors)}


@dataclass
class IncidentResult:
    success: bool
    number: str | None = None
    sys_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "number": self.number,
            "sysId": self.sys_id,
            "error": self.error,
        }


class ServiceNowService:
    """Client for one ServiceNow instance.

    Attributes:
        instance_url: Instance root without a trailing slash.
    """

    def __init__(
        self,
        instance_url: str,
        credentials: ServiceNowCredentials,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.instance_url = instance_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=f"{self.instance_url}/api/now/",
            auth=httpx.BasicAuth(credentials.username, credentials.password),
            headers={"Accept": "application/json"},
            transport=transport,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ServiceNowService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()

    async def _request(self, endpoint: str, method: str = "GET", body: Any | None = None) -> Any:
        try:
            response = await self._http.request(method, endpoint, json=body)
        except httpx.HTTPError as exc:
            raise ServiceNowError(0, str(exc)) from exc
        if response.is_error:
            raise ServiceNowError(response.status_code, response.text)
        return response.json()

    async def test_connection(self) -> dict[str, Any]:
        try:
            await self._request("table/sys_user?sysparm_limit=1")
        except ServiceNowError as exc:
            return {"success": False, "message": str(exc)}
        return {"success": True, "message": "Connection successful"}

    async def get_knowledge_bases(self) -> list[dict[str, str]]:
        """ServiceNow knowledge bases as ``{"id", "name"}``; empty on failure."""
        try:
            data = await self._request(
                "table/kb_knowledge_base?sysparm_fields=sys_id,title&sysparm_limit=100"
            )
        except ServiceNowError:
            logger.exception("Failed to fetch ServiceNow knowledge bases")
            return []
        return [{"id": kb["sys_id"], "name": kb["title"]} for kb in data.get("result", [])]

    async def sync_article(self, article: ArticleRecord, servicenow_kb_id: str) -> ArticleSyncResult:
        payload = {
            "short_description": article.title,
            "text": article.content,
            "kb_knowledge_base": servicenow_kb_id,
            "workflow_state": "published" if article.is_public else "draft",
        }
        try:
            data = await self._request("table/kb_knowledge", "POST", payload)
        except ServiceNowError as exc:
            return ArticleSyncResult(success=False, error=str(exc))
        return ArticleSyncResult(success=True, sys_id=data["result"]["sys_id"])

    async def sync_articles(
        self, articles: Iterable[ArticleRecord], servicenow_kb_id: str
    ) -> BatchSyncResult:
        outcome = BatchSyncResult()
        for article in articles:
            result = await self.sync_article(article, servicenow_kb_id)
            if result.success:
                outcome.synced += 1
            else:
                outcome.failed += 1
                outcome.errors.append(f"{article.title}: {result.error}")
        logger.info(
            "ServiceNow sync to %s: synced=%d failed=%d",
            servicenow_kb_id,
            outcome.synced,
            outcome.failed,
        )
        return outcome

    async def create_incident(
        self,
        short_description: str,
        description: str,
        category: str | None = None,
        subcategory: str | None = None,
        caller_id: str | None = None,
    ) -> IncidentResult:
        payload: dict[str, Any] = {
            "short_description": short_description,
            "description": description,
        }
        for key, value in (
            ("category", category),
            ("subcategory", subcategory),
            ("caller_id", caller_id),
        ):
            if value is not None:
                payload[key] = value
        try:
            data = await self._request("table/incident", "POST", payload)
        except ServiceNowError as exc:
            return IncidentResult(success=False, error=str(exc))
        result = data["result"]
        return IncidentResult(success=True, number=result.get("number"), sys_id=result.get("sys_id"))

    def generate_incident_form_url(self, article_title: str, article_url: str) -> str:
        params = urlencode({
            "sysparm_query": f"short_description=Help needed: {article_title}",
            "sysparm_description": (
                f"User needs additional help with: {article_title}\n\n"
                f"Reference article: {article_url}"
            ),
        })
        return f"{self.instance_url}/incident.do?{params}"


def get_servicenow_credentials(config: Settings | None = None) -> ServiceNowCredentials | None:
    """Credentials from settings, or None unless both username and password are set."""
    config = config or default_settings
    if not config.SERVICENOW_USERNAME or not config.SERVICENOW_PASSWORD:
        return None
    return ServiceNowCredentials(config.SERVICENOW_USERNAME, config.SERVICENOW_PASSWORD)
