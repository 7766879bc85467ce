"""User identity records.

A user is addressed by a case-insensitive username. Uniqueness and lookup both go through the
lower(username) projection, backed by the ``uq_users_username`` unique index.
"""
from typing import Any, Dict

from sqlalchemy import Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from thetc.auth.model.base import Base, JSONDocument, str64, uuidpk


class User(Base):
    """A registered identity.

    ``password_hash`` is opaque credential material. The store only persists it and never
    includes it in ``repr`` output.
    """

    __tablename__ = "users"

    id: Mapped[uuidpk]
    username: Mapped[str64]
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    meta: Mapped[Dict[str, Any]] = mapped_column(
        JSONDocument, nullable=False, default=dict, server_default=text("'{}'")
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!s} username={self.username!r}>"


USERNAME_INDEX = "uq_users_username"

Index(USERNAME_INDEX, func.lower(User.username), unique=True)


def username_key(username: str):
    """Case-insensitive comparison key for a username column or literal."""
    return func.lower(username)
