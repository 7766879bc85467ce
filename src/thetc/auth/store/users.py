"""User directory.

Owns user identity records. Case-insensitive uniqueness of usernames is enforced by the
``uq_users_username`` unique index; a second registration differing only in case is rejected by
the engine and reported as DuplicateIdentity.
"""
import logging
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thetc.auth.errors import (
    DuplicateIdentity,
    HasDependentSessions,
    NotFound,
)
from thetc.auth.model.users import User, username_key
from thetc.auth.username import UsernameKind, validate_username

logger = logging.getLogger(__name__)


class NewUser(BaseModel):
    """Registration input. The username kind is passed as validation context."""

    username: str
    password_hash: str = Field(min_length=1)
    meta: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("username")
    @classmethod
    def username_check(cls, v: str, info: ValidationInfo) -> str:
        kind = (info.context or {}).get("username_kind", UsernameKind.ASCII)
        return validate_username(v, kind)


class UserDirectory:
    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        username_kind: UsernameKind = UsernameKind.ASCII,
    ):
        self.database_session_maker = database_session_maker
        self.username_kind = UsernameKind(username_kind)

    async def create_user(
        self,
        username: str,
        password_hash: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> User:
        """
        Register a new user.

        Raises:
            pydantic.ValidationError: If the username breaks the configured rules
            DuplicateIdentity: If the username is taken, compared case-insensitively
        """
        new_user = NewUser.model_validate(
            {
                "username": username,
                "password_hash": password_hash,
                "meta": meta if meta is not None else {},
            },
            context={"username_kind": self.username_kind},
        )

        user = User(
            id=uuid.uuid4(),
            username=new_user.username,
            password_hash=new_user.password_hash,
            meta=new_user.meta,
        )

        async with self.database_session_maker() as database_session:
            try:
                async with database_session.begin():
                    database_session.add(user)
            except IntegrityError as e:
                logger.info("create_user: duplicate username %r", new_user.username)
                raise DuplicateIdentity.username(new_user.username) from e

        logger.debug("create_user: created %s", user.id)
        return user

    async def get_user_by_username(self, username: str) -> User:
        async with self.database_session_maker() as database_session:
            stmt = select(User).where(
                username_key(User.username) == username_key(username.strip())
            )
            user: Optional[User] = (await database_session.scalars(stmt)).first()

        if user is None:
            raise NotFound.user(repr(username))
        return user

    async def get_user_by_id(self, user_id: uuid.UUID) -> User:
        async with self.database_session_maker() as database_session:
            user = await database_session.get(User, user_id)

        if user is None:
            raise NotFound.user(user_id)
        return user

    async def update_meta(self, user_id: uuid.UUID, meta: Dict[str, Any]) -> None:
        if not isinstance(meta, dict):
            raise ValueError("meta must be a JSON object")
        await self._update(user_id, meta=meta)

    async def update_password_hash(self, user_id: uuid.UUID, password_hash: str) -> None:
        if len(password_hash) == 0:
            raise ValueError("password_hash must not be empty")
        await self._update(user_id, password_hash=password_hash)

    async def delete_user(self, user_id: uuid.UUID) -> None:
        """
        Delete a user.

        Deletion is rejected while any session, live or expired, still references the user.

        Raises:
            NotFound: If no user has this id
            HasDependentSessions: If the foreign key from sessions rejected the deletion
        """
        async with self.database_session_maker() as database_session:
            try:
                async with database_session.begin():
                    result = await database_session.execute(
                        delete(User).where(User.id == user_id)
                    )
                    if result.rowcount == 0:
                        raise NotFound.user(user_id)
            except IntegrityError as e:
                logger.info("delete_user: %s still has sessions", user_id)
                raise HasDependentSessions.user(user_id) from e

        logger.debug("delete_user: deleted %s", user_id)

    async def _update(self, user_id: uuid.UUID, **values: Any) -> None:
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    update(User).where(User.id == user_id).values(**values)
                )
                if result.rowcount == 0:
                    raise NotFound.user(user_id)
