"""Service tokens issued to non-human callers.

The ``token`` column is the authentication hot path: callers present a bearer token and the
store resolves it to the owning service through the ``idx_appauth_token`` unique index.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from thetc.auth.model.base import Base, JSONDocument, UTCDateTime, str512, uuidpk

NAME_INDEX = "uq_appauth_name"
TOKEN_INDEX = "idx_appauth_token"


class AppAuth(Base):
    """A long-lived bearer credential scoped to a named service.

    ``expires_at`` is optional; a token without one never expires.
    """

    __tablename__ = "appauth"

    id: Mapped[uuidpk]
    name: Mapped[str512]
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token: Mapped[str512]
    meta: Mapped[Dict[str, Any]] = mapped_column(
        JSONDocument, nullable=False, default=dict, server_default=text("'{}'")
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index(NAME_INDEX, "name", unique=True),
        Index(TOKEN_INDEX, "token", unique=True),
    )

    def is_expired(self, now: datetime) -> bool:
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        return self.expires_at is not None and now >= self.expires_at

    def __repr__(self) -> str:
        return f"<AppAuth id={self.id!s} name={self.name!r}>"
