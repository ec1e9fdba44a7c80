"""
HTTP client for the Help Center API.

Implements the knowledge-base directory used by the tenant resolver
(membership listing and creation) plus generic JSON calls for the
tenant-scoped resources. Identity is forwarded in the ``X-User-Id``
header the way the upstream gateway does it.

Example:
    async with HelpCenterClient("http://localhost:8000", "user-1") as client:
        memberships = await client.list_knowledge_bases()
        articles = await client.get_json("/api/articles?kbId=kb1")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from helpcenter.multitenancy.membership import KnowledgeBaseMembership
from helpcenter.multitenancy.scoping import USER_HEADER

logger = logging.getLogger(__name__)


class HelpCenterAPIError(Exception):
    """Raised when the Help Center API cannot be reached or answers non-2xx.

    Attributes:
        status_code: HTTP status, or 0 when no response was received.
        message: Server-provided detail or transport error text.
        path: The request path.
    """

    def __init__(self, status_code: int, message: str, path: str | None = None):
        self.status_code = status_code
        self.message = message
        self.path = path
        super().__init__(f"Help Center API error {status_code} on {path}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "api_error",
            "status_code": self.status_code,
            "message": self.message,
            "path": self.path,
        }


class HelpCenterClient:
    """Async JSON client for one identity.

    Attributes:
        user_id: The identity requests are made as.
        _http: The underlying httpx client.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.user_id = user_id
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={USER_HEADER: user_id, "Accept": "application/json"},
            transport=transport,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "HelpCenterClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()

    async def request(self, method: str, path: str, body: Any | None = None) -> Any:
        """Send a request and decode the JSON response.

        Raises:
            HelpCenterAPIError: On transport failure or a non-2xx status.
        """
        try:
            response = await self._http.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise HelpCenterAPIError(0, str(exc), path) from exc

        if response.is_error:
            raise HelpCenterAPIError(response.status_code, _error_detail(response), path)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get_json(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post_json(self, path: str, body: Any | None = None) -> Any:
        return await self.request("POST", path, body)

    async def put_json(self, path: str, body: Any | None = None) -> Any:
        return await self.request("PUT", path, body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    # --- Knowledge-base directory ---

    async def list_knowledge_bases(self) -> list[KnowledgeBaseMembership]:
        data = await self.get_json("/api/knowledge-bases")
        return [KnowledgeBaseMembership.from_dict(item) for item in data or []]

    async def create_knowledge_base(self, display_name: str) -> KnowledgeBaseMembership:
        data = await self.post_json("/api/knowledge-bases", {"displayName": display_name})
        return KnowledgeBaseMembership.from_dict(data)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("message")
        if detail is not None:
            return str(detail)
    return str(payload)
