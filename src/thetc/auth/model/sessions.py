"""Login sessions.

Each session belongs to exactly one user through a foreign key with no ON DELETE action, so a
user cannot be deleted while any of its sessions still exist. Expiry is a query-time concern:
``expires_at`` is recorded but rows are only removed by explicit reaping or logout.
"""
import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from thetc.auth.model.base import Base, JSONDocument, UTCDateTime, uuidpk


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[uuidpk]
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", name="fk_sessions_user_id"), nullable=False
    )
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSONDocument, nullable=False, default=dict, server_default=text("'{}'")
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("idx_sessions_user_id", "user_id"),
        Index("idx_sessions_expires_at", "expires_at"),
    )

    def is_live(self, now: datetime) -> bool:
        return is_live(self, now)

    def __repr__(self) -> str:
        return (
            f"<Session id={self.id!s} user_id={self.user_id!s} "
            f"expires_at={self.expires_at.isoformat() if self.expires_at else None}>"
        )


def is_live(session: Session, now: datetime) -> bool:
    """A session is live strictly before its expiry instant."""
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now < session.expires_at
