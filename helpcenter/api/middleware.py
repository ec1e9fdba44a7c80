"""Request-logging middleware for FastAPI."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from helpcenter.multitenancy.scoping import KB_ID_PARAM, USER_HEADER

logger = logging.getLogger("helpcenter.api")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with its knowledge base and caller.

    A request ID forwarded by the gateway is reused; otherwise one is
    generated. Either way it is echoed back in ``X-Request-ID``.
    """

    async def dispatch(self, request: Request, call_next):  # noqa: ANN001
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "method=%s path=%s kb_id=%s user=%s status_code=%s duration_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            request.query_params.get(KB_ID_PARAM, "-"),
            request.headers.get(USER_HEADER, "-"),
            response.status_code,
            elapsed_ms,
            request_id,
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
