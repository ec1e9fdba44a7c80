"""
API key authentication for the public REST API under ``/api/v1``.

A key has the form ``kb_<8 hex>_<64 hex>``. The first two segments are
its public prefix, used to look the key up; the last is the secret,
stored only as an HMAC-SHA256 keyed with ``SECRET_KEY``.

Failure modes:
    - Missing or malformed ``Authorization: Bearer`` header: 401
    - Unknown, mismatched or revoked key: 401
    - Key lacks a required scope: 403
    - Over the key's per-window request limit: 429, with ``Retry-After``

Successful requests carry ``X-RateLimit-Limit``, ``X-RateLimit-Remaining``
and ``X-RateLimit-Reset`` (epoch seconds) headers.

Example:
    @router.get("/articles")
    async def list_articles(
        api: ApiKeyScope = Depends(require_api_key(ApiKeyScopeName.READ)),
        storage: Storage = Depends(get_storage),
    ):
        ...
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import secrets
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from fastapi import Depends, Header, HTTPException, Request, Response

from helpcenter.api.dependencies import get_storage
from helpcenter.config.settings import settings
from helpcenter.storage.base import ApiKeyRecord, Storage

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "kb"


class ApiKeyScopeName(str, Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class GeneratedKey:
    prefix: str
    secret: str

    @property
    def full_key(self) -> str:
        return f"{self.prefix}_{self.secret}"


def generate_api_key() -> GeneratedKey:
    return GeneratedKey(
        prefix=f"{KEY_NAMESPACE}_{secrets.token_hex(4)}",
        secret=secrets.token_hex(32),
    )


def hash_api_key(secret: str, secret_key: str | None = None) -> str:
    key = (secret_key if secret_key is not None else settings.SECRET_KEY).encode()
    return hmac.new(key, secret.encode(), hashlib.sha256).hexdigest()


def verify_api_key(secret: str, hashed_key: str, secret_key: str | None = None) -> bool:
    return hmac.compare_digest(hash_api_key(secret, secret_key), hashed_key)


def parse_api_key(full_key: str) -> tuple[str, str] | None:
    """Split a full key into ``(prefix, secret)``, or None if malformed."""
    parts = full_key.split("_")
    if len(parts) != 3 or parts[0] != KEY_NAMESPACE or not parts[1] or not parts[2]:
        return None
    return f"{parts[0]}_{parts[1]}", parts[2]


def has_scope(key: ApiKeyRecord, scope: str) -> bool:
    """``write`` implies every other scope."""
    return scope in key.scopes or ApiKeyScopeName.WRITE.value in key.scopes


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class RateLimiter:
    """Fixed-window request counter per API key, held in process memory."""

    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def check(self, key_id: str, limit: int) -> RateLimitStatus:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key_id, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds
            if count >= limit:
                self._windows[key_id] = (count, reset_at)
                return RateLimitStatus(False, limit, 0, reset_at)
            count += 1
            self._windows[key_id] = (count, reset_at)
            return RateLimitStatus(True, limit, limit - count, reset_at)

    def retry_after(self, status: RateLimitStatus) -> int:
        return max(1, math.ceil(status.reset_at - self._clock()))


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.api_rate_limiter


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApiKeyScope:
    """The knowledge base an API request is scoped to, via its key."""

    kb_id: str
    key: ApiKeyRecord


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=401, detail=message, headers={"WWW-Authenticate": "Bearer"}
    )


async def authenticate_api_key(
    authorization: str | None, storage: Storage
) -> ApiKeyRecord:
    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized(
            "Missing or invalid authorization header. Use 'Bearer <api_key>' format."
        )
    parsed = parse_api_key(authorization[len("Bearer "):].strip())
    if parsed is None:
        raise _unauthorized("Invalid API key format.")
    prefix, secret = parsed

    key = await storage.get_api_key_by_prefix(prefix)
    if key is None or not verify_api_key(secret, key.hashed_key):
        logger.info("Rejected API key with prefix %s", prefix)
        raise _unauthorized("Invalid API key.")
    if key.is_revoked:
        raise _unauthorized("API key has been revoked.")
    return key


def require_api_key(*scopes: ApiKeyScopeName) -> Callable[..., Awaitable[ApiKeyScope]]:
    """Build a dependency that authenticates the bearer key and checks ``scopes``."""

    async def dependency(
        response: Response,
        authorization: str | None = Header(default=None),
        storage: Storage = Depends(get_storage),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> ApiKeyScope:
        key = await authenticate_api_key(authorization, storage)
        for scope in scopes:
            if not has_scope(key, scope.value):
                raise HTTPException(
                    status_code=403, detail=f"Missing required scope: {scope.value}"
                )

        status = limiter.check(key.id, key.rate_limit_override or settings.API_RATE_LIMIT)
        if not status.allowed:
            logger.info("Rate limited API key %s", key.prefix)
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please try again later.",
                headers={**status.headers(), "Retry-After": str(limiter.retry_after(status))},
            )
        response.headers.update(status.headers())

        await storage.record_api_key_usage(key.id)
        return ApiKeyScope(kb_id=key.knowledge_base_id, key=key)

    return dependency
