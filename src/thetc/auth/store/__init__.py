"""
Storage access layer for the identity store.

Each repository method is one atomic unit of work: it opens its own database session, runs a
single transaction and either commits everything or leaves all three tables unchanged.
Uniqueness and referential checks are left to the engine's constraints, never to a read
followed by a write.

Key Components:
- users.py: UserDirectory, registration and lookup of identities
- sessions.py: SessionLedger and SessionManager, session records and their lifecycle
- appauth.py: ServiceTokenRegistry, issuing and resolving service tokens
- cache.py: TokenCache, optional Redis cache in front of token resolution
"""
import logging
from datetime import timedelta
from typing import Optional

from redis import asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from thetc.auth.app.config import Settings
from thetc.auth.app.database import create_engine, create_schema, create_sessionmaker
from thetc.auth.app.metrics import MetricsClient, NoOpMetricsClient
from thetc.auth.store.appauth import ServiceTokenRegistry
from thetc.auth.store.cache import TokenCache
from thetc.auth.store.sessions import SessionLedger, SessionManager
from thetc.auth.store.users import UserDirectory
from thetc.auth.username import UsernameKind

logger = logging.getLogger(__name__)


class IdentityStore:
    """
    The three repositories sharing one engine.

    Attributes:
        users: UserDirectory
        sessions: SessionLedger
        session_manager: SessionManager using the configured lifetime
        tokens: ServiceTokenRegistry
    """

    def __init__(
        self,
        engine: AsyncEngine,
        database_session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        username_kind: UsernameKind = UsernameKind.ASCII,
        session_ttl: timedelta = timedelta(days=1),
        session_auto_refresh: bool = False,
        token_cache: Optional[TokenCache] = None,
        metrics_client: Optional[MetricsClient] = None,
        metrics_prefix: str = "thetc_auth",
    ):
        self.engine = engine
        self.database_session_maker = database_session_maker or create_sessionmaker(
            engine
        )
        self.metrics_client = metrics_client or NoOpMetricsClient()
        self.owned_redis_client: Optional[redis.Redis] = None

        self.users = UserDirectory(self.database_session_maker, username_kind)
        self.sessions = SessionLedger(self.database_session_maker)
        self.session_manager = SessionManager(
            self.sessions, session_ttl, auto_refresh=session_auto_refresh
        )
        self.tokens = ServiceTokenRegistry(
            self.database_session_maker,
            token_cache=token_cache,
            metrics_client=self.metrics_client,
            metrics_prefix=metrics_prefix,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        redis_client: Optional[redis.Redis] = None,
        metrics_client: Optional[MetricsClient] = None,
    ) -> "IdentityStore":
        """
        Build a store from settings.

        A Redis client is created from ``settings.redis_dsn`` when none is given; without
        either, token resolution reads the database only.
        """
        engine = create_engine(settings.database_url, debug=settings.debug)

        owned_redis_client = None
        if redis_client is None and settings.redis_dsn is not None:
            redis_client = owned_redis_client = redis.Redis.from_url(
                str(settings.redis_dsn)
            )

        token_cache = None
        if redis_client is not None:
            token_cache = TokenCache(redis_client, ttl=settings.token_cache_ttl)

        logger.info(
            "Identity store using %s, token cache %s",
            engine.dialect.name,
            "enabled" if token_cache is not None else "disabled",
        )

        store = cls(
            engine,
            username_kind=settings.username_kind,
            session_ttl=timedelta(seconds=settings.session_ttl),
            session_auto_refresh=settings.session_auto_refresh,
            token_cache=token_cache,
            metrics_client=metrics_client,
            metrics_prefix=settings.statsd_prefix,
        )
        store.owned_redis_client = owned_redis_client
        return store

    async def create_schema(self) -> None:
        await create_schema(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()
        if self.owned_redis_client is not None:
            await self.owned_redis_client.aclose()


__all__ = [
    "IdentityStore",
    "ServiceTokenRegistry",
    "SessionLedger",
    "SessionManager",
    "TokenCache",
    "UserDirectory",
]
