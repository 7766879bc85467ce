"""Session ledger.

Owns session records. A session may only be written for an existing user; the foreign key on
``sessions.user_id`` performs that check inside the same statement as the insert, so no orphan
session is ever persisted.

Reads never filter on expiry. ``get_session`` returns dead sessions too, and ``delete_expired``
is the only bulk removal; it runs when an external scheduler calls it.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thetc.auth.errors import Expired, NotFound, UnknownUser
from thetc.auth.model.sessions import Session, is_live

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_aware(value: datetime, name: str) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"{name} must be timezone-aware")
    return value


class SessionLedger:
    def __init__(self, database_session_maker: async_sessionmaker[AsyncSession]):
        self.database_session_maker = database_session_maker

    async def create_session(
        self,
        user_id: uuid.UUID,
        ttl: timedelta,
        data: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Session:
        """
        Create a session for a user, expiring ``ttl`` after ``now``.

        Raises:
            UnknownUser: If no user has this id
        """
        now = require_aware(now, "now") if now is not None else utcnow()

        session = Session(
            id=uuid.uuid4(),
            user_id=user_id,
            data=data if data is not None else {},
            expires_at=now + ttl,
        )

        async with self.database_session_maker() as database_session:
            try:
                async with database_session.begin():
                    database_session.add(session)
            except IntegrityError as e:
                logger.info("create_session: unknown user %s", user_id)
                raise UnknownUser.user(user_id) from e

        logger.debug("create_session: created %s for %s", session.id, user_id)
        return session

    async def get_session(self, session_id: uuid.UUID) -> Session:
        """Return the session whether or not it has expired."""
        async with self.database_session_maker() as database_session:
            session = await database_session.get(Session, session_id)

        if session is None:
            raise NotFound.session(session_id)
        return session

    async def touch(self, session_id: uuid.UUID, new_expires_at: datetime) -> None:
        require_aware(new_expires_at, "new_expires_at")
        await self._update(session_id, expires_at=new_expires_at)

    async def update_data(self, session_id: uuid.UUID, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise ValueError("data must be a JSON object")
        await self._update(session_id, data=data)

    async def delete_session(self, session_id: uuid.UUID) -> None:
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(Session).where(Session.id == session_id)
                )
                if result.rowcount == 0:
                    raise NotFound.session(session_id)

    async def delete_sessions_for_user(self, user_id: uuid.UUID) -> int:
        """Delete every session of a user and return how many were removed."""
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(Session).where(Session.user_id == user_id)
                )
        return result.rowcount

    async def delete_expired(self, now: datetime) -> int:
        """Delete sessions whose expiry is at or before ``now`` and return the count."""
        require_aware(now, "now")
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(Session).where(Session.expires_at <= now)
                )

        if result.rowcount > 0:
            logger.info("delete_expired: reaped %d sessions", result.rowcount)
        return result.rowcount

    async def _update(self, session_id: uuid.UUID, **values: Any) -> None:
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    update(Session).where(Session.id == session_id).values(**values)
                )
                if result.rowcount == 0:
                    raise NotFound.session(session_id)


class SessionManager:
    """
    Session lifecycle on top of a SessionLedger with a fixed lifetime.

    When ``auto_refresh`` is set, every successful access pushes the expiry to now plus the
    lifetime. Dead sessions are reported as Expired and left in place for the reaper.
    """

    def __init__(
        self,
        ledger: SessionLedger,
        alive_duration: timedelta,
        auto_refresh: bool = False,
    ):
        if alive_duration <= timedelta(0):
            raise ValueError("alive_duration must be positive")
        self.ledger = ledger
        self.alive_duration = alive_duration
        self.auto_refresh = auto_refresh

    async def new_session(
        self,
        user_id: uuid.UUID,
        data: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Session:
        return await self.ledger.create_session(
            user_id, self.alive_duration, data=data, now=now
        )

    async def current(
        self, session_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Session:
        """
        Return a live session.

        Raises:
            NotFound: If the session does not exist
            Expired: If the session exists but is past its expiry
        """
        now = require_aware(now, "now") if now is not None else utcnow()

        session = await self.ledger.get_session(session_id)
        if not is_live(session, now):
            raise Expired.session(session_id)

        if self.auto_refresh:
            session.expires_at = now + self.alive_duration
            await self.ledger.touch(session_id, session.expires_at)

        return session

    async def extend(
        self, session_id: uuid.UUID, now: Optional[datetime] = None
    ) -> datetime:
        now = require_aware(now, "now") if now is not None else utcnow()
        expires_at = now + self.alive_duration
        await self.ledger.touch(session_id, expires_at)
        return expires_at

    async def expire(self, session_id: uuid.UUID) -> None:
        await self.ledger.delete_session(session_id)
