"""Service token registry.

Issues and resolves long-lived bearer tokens for non-human callers. Both ``name`` and ``token``
are unique at the storage layer: two concurrent ``issue_token`` calls with the same token value
end with exactly one insert committed and the other rejected by the engine.

``resolve_by_token`` is the authentication hot path. It separates a missing token (NotFound)
from an expired one (Expired) so the two outcomes can be told apart in logs and metrics, even
though both deny access.
"""
import logging
import uuid
from datetime import datetime
from time import time
from typing import Any, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thetc.auth.app.metrics import MetricsClient, NoOpMetricsClient
from thetc.auth.errors import (
    DuplicateName,
    DuplicateToken,
    Expired,
    NotFound,
    violates,
)
from thetc.auth.model.appauth import NAME_INDEX, TOKEN_INDEX, AppAuth
from thetc.auth.store.cache import TokenCache
from thetc.auth.store.sessions import require_aware, utcnow

logger = logging.getLogger(__name__)


def classify_integrity_error(error: IntegrityError, name: str) -> Exception:
    # Token collisions are checked first; they are the security relevant case.
    if violates(error, AppAuth.__tablename__, "token", TOKEN_INDEX):
        return DuplicateToken.appauth()
    if violates(error, AppAuth.__tablename__, "name", NAME_INDEX):
        return DuplicateName.appauth(name)
    return error


class ServiceTokenRegistry:
    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        token_cache: Optional[TokenCache] = None,
        metrics_client: Optional[MetricsClient] = None,
        metrics_prefix: str = "thetc_auth",
    ):
        self.database_session_maker = database_session_maker
        self.token_cache = token_cache
        self.metrics_client = metrics_client or NoOpMetricsClient()
        self.metrics_prefix = metrics_prefix

    async def issue_token(
        self,
        name: str,
        token: str,
        description: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> AppAuth:
        """
        Register a service token.

        Raises:
            DuplicateName: If a token with this name already exists
            DuplicateToken: If this token value is already issued
        """
        if len(name) == 0:
            raise ValueError("name must not be empty")
        if len(token) == 0:
            raise ValueError("token must not be empty")
        if expires_at is not None:
            require_aware(expires_at, "expires_at")

        appauth = AppAuth(
            id=uuid.uuid4(),
            name=name,
            description=description,
            token=token,
            meta=meta if meta is not None else {},
            expires_at=expires_at,
        )

        async with self.database_session_maker() as database_session:
            try:
                async with database_session.begin():
                    database_session.add(appauth)
            except IntegrityError as e:
                failure = classify_integrity_error(e, name)
                logger.info("issue_token: rejected %r: %s", name, type(failure).__name__)
                if failure is e:
                    raise
                raise failure from e

        logger.info("issue_token: issued %s for %r", appauth.id, name)
        return appauth

    async def resolve_by_token(
        self, token: str, now: Optional[datetime] = None
    ) -> AppAuth:
        """
        Resolve the caller identity behind a presented token.

        Raises:
            NotFound: If no service token has this value
            Expired: If the token exists but its expiry has passed
        """
        now = require_aware(now, "now") if now is not None else utcnow()
        start_time = time()
        source = "database"

        try:
            appauth: Optional[AppAuth] = None
            if self.token_cache is not None:
                appauth = await self.token_cache.get(token)
                if appauth is not None:
                    source = "cache"

            if appauth is None:
                async with self.database_session_maker() as database_session:
                    stmt = select(AppAuth).where(AppAuth.token == token)
                    appauth = (await database_session.scalars(stmt)).first()

                if appauth is None:
                    self._count_resolve("not_found", source)
                    logger.info("resolve_by_token: unknown token")
                    raise NotFound.appauth()

                if self.token_cache is not None and not appauth.is_expired(now):
                    await self.token_cache.put(appauth, now)

            if appauth.is_expired(now):
                self._count_resolve("expired", source)
                logger.info("resolve_by_token: token for %r has expired", appauth.name)
                raise Expired.appauth(appauth.id)

            self._count_resolve("ok", source)
            return appauth
        finally:
            self.metrics_client.timer(
                f"{self.metrics_prefix}.appauth.resolve.time", time() - start_time
            )

    async def get_by_name(self, name: str) -> AppAuth:
        async with self.database_session_maker() as database_session:
            stmt = select(AppAuth).where(AppAuth.name == name)
            appauth: Optional[AppAuth] = (await database_session.scalars(stmt)).first()

        if appauth is None:
            raise NotFound.appauth(repr(name))
        return appauth

    async def revoke(self, appauth_id: uuid.UUID) -> None:
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(AppAuth)
                    .where(AppAuth.id == appauth_id)
                    .returning(AppAuth.token)
                )
                revoked_token: Optional[str] = result.scalar_one_or_none()
                if revoked_token is None:
                    raise NotFound.appauth(appauth_id)

        if self.token_cache is not None:
            await self.token_cache.invalidate(revoked_token)
        logger.info("revoke: revoked %s", appauth_id)

    async def rotate_token(self, appauth_id: uuid.UUID, new_token: str) -> None:
        """
        Replace the token value of a service token.

        Raises:
            NotFound: If no service token has this id
            DuplicateToken: If the new value is already issued to another service
        """
        if len(new_token) == 0:
            raise ValueError("new_token must not be empty")

        async with self.database_session_maker() as database_session:
            try:
                async with database_session.begin():
                    old_token: Optional[str] = (
                        await database_session.scalars(
                            select(AppAuth.token)
                            .where(AppAuth.id == appauth_id)
                            .with_for_update()
                        )
                    ).first()
                    if old_token is None:
                        raise NotFound.appauth(appauth_id)

                    await database_session.execute(
                        update(AppAuth)
                        .where(AppAuth.id == appauth_id)
                        .values(token=new_token)
                    )
            except IntegrityError as e:
                logger.info("rotate_token: new token for %s already issued", appauth_id)
                raise DuplicateToken.appauth() from e

        if self.token_cache is not None:
            await self.token_cache.invalidate(old_token)
        logger.info("rotate_token: rotated %s", appauth_id)

    async def set_expiry(
        self, appauth_id: uuid.UUID, expires_at: Optional[datetime]
    ) -> None:
        """Set, extend or clear (``None``) the expiry of a service token."""
        if expires_at is not None:
            require_aware(expires_at, "expires_at")

        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    update(AppAuth)
                    .where(AppAuth.id == appauth_id)
                    .values(expires_at=expires_at)
                    .returning(AppAuth.token)
                )
                token: Optional[str] = result.scalar_one_or_none()
                if token is None:
                    raise NotFound.appauth(appauth_id)

        if self.token_cache is not None:
            await self.token_cache.invalidate(token)

    async def delete_expired(self, now: datetime) -> int:
        """Delete tokens whose expiry is at or before ``now``. Tokens without expiry stay."""
        require_aware(now, "now")
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(AppAuth).where(
                        AppAuth.expires_at.is_not(None), AppAuth.expires_at <= now
                    )
                )

        if result.rowcount > 0:
            logger.info("delete_expired: reaped %d service tokens", result.rowcount)
        return result.rowcount

    def _count_resolve(self, result: str, source: str) -> None:
        self.metrics_client.increment(
            f"{self.metrics_prefix}.appauth.resolve",
            1,
            tag_dict={"result": result, "source": source},
        )
