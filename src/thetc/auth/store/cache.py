"""Redis read-through cache for service token resolution.

Keys are derived from a SHA-256 digest of the token so raw tokens never appear in Redis key
space. Values are JSON snapshots of the AppAuth record. The database stays the only authority
for uniqueness; a cache miss, an unreadable entry or a Redis failure falls back to the database.

Invalidation leaves a marker key behind for a while, so a snapshot read from the database before
a revoke, rotation or expiry change is never served after it.
"""
import hashlib
import json
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis import asyncio as redis
from redis.exceptions import RedisError

from thetc.auth.model.appauth import AppAuth

logger = logging.getLogger(__name__)

KEY_PREFIX = "thetc-auth:appauth"
INVALIDATED_PREFIX = "thetc-auth:appauth-invalidated"

# Invalidation markers live longer than any entry written while they are set.
INVALIDATION_TTL_FACTOR = 2


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def cache_key(token: str) -> str:
    return f"{KEY_PREFIX}:{_digest(token)}"


def invalidation_key(token: str) -> str:
    return f"{INVALIDATED_PREFIX}:{_digest(token)}"


def dump_appauth(appauth: AppAuth) -> str:
    return json.dumps(
        {
            "id": str(appauth.id),
            "name": appauth.name,
            "description": appauth.description,
            "token": appauth.token,
            "meta": appauth.meta,
            "expires_at": (
                appauth.expires_at.isoformat() if appauth.expires_at else None
            ),
        }
    )


def load_appauth(value: Any) -> AppAuth:
    if isinstance(value, bytes):
        value = value.decode()
    data: Dict[str, Any] = json.loads(value)
    expires_at = data.get("expires_at")
    return AppAuth(
        id=uuid.UUID(data["id"]),
        name=data["name"],
        description=data.get("description"),
        token=data["token"],
        meta=data.get("meta") or {},
        expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
    )


class TokenCache:
    def __init__(self, redis_client: redis.Redis, ttl: int = 300):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.redis_client = redis_client
        self.ttl = ttl

    async def get(self, token: str) -> Optional[AppAuth]:
        try:
            value, invalidated = await self.redis_client.mget(
                cache_key(token), invalidation_key(token)
            )
        except RedisError:
            logger.exception("TokenCache.get: redis error, falling back to database")
            return None

        # A recently invalidated token is always read from the database.
        if value is None or invalidated is not None:
            return None

        try:
            return load_appauth(value)
        except (ValueError, KeyError):
            logger.exception("TokenCache.get: unreadable entry, falling back to database")
            return None

    async def put(self, appauth: AppAuth, now: Optional[datetime] = None) -> None:
        """Cache a record, never past its own expiry nor over a recent invalidation."""
        now = now or datetime.now(timezone.utc)
        ttl = self.ttl
        if appauth.expires_at is not None:
            remaining = math.floor((appauth.expires_at - now).total_seconds())
            if remaining <= 0:
                return
            ttl = min(ttl, remaining)

        try:
            if await self.redis_client.exists(invalidation_key(appauth.token)):
                return
            await self.redis_client.set(cache_key(appauth.token), dump_appauth(appauth), ex=ttl)
        except RedisError:
            logger.exception("TokenCache.put: redis error")

    async def invalidate(self, token: str) -> None:
        """
        Drop the entry for a token and mark the token as invalidated.

        A resolve that read the database before the change may still write its snapshot after
        this call. The marker outlives any such entry, and ``get`` ignores entries while it is
        set. Errors propagate: a revoked token must not stay resolvable from a stale entry.
        """
        await self.redis_client.set(
            invalidation_key(token), b"1", ex=self.ttl * INVALIDATION_TTL_FACTOR
        )
        await self.redis_client.delete(cache_key(token))
