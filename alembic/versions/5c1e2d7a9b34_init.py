"""init

Revision ID: 5c1e2d7a9b34
Revises:
Create Date: 2026-10-19 11:30:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "5c1e2d7a9b34"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("password_hash", sa.String(512), nullable=False),
        sa.Column("meta", _json(), nullable=False, server_default=sa.text("'{}'")),
    )
    # Case-insensitive uniqueness: the lower() projection is both the key and the lookup path.
    op.create_index(
        "uq_users_username", "users", [sa.text("lower(username)")], unique=True
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid,
            sa.ForeignKey("users.id", name="fk_sessions_user_id"),
            nullable=False,
        ),
        sa.Column("data", _json(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_sessions_user_id", "sessions", ["user_id"])
    op.create_index("idx_sessions_expires_at", "sessions", ["expires_at"])

    op.create_table(
        "appauth",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("token", sa.String(512), nullable=False),
        sa.Column("meta", _json(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("uq_appauth_name", "appauth", ["name"], unique=True)
    op.create_index("idx_appauth_token", "appauth", ["token"], unique=True)


def downgrade() -> None:
    op.drop_table("sessions")
    op.drop_table("appauth")
    op.drop_table("users")
