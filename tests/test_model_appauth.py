"""
Unit tests for the AppAuth model in thetc.auth.model.appauth

Tests cover CRUD operations, the unique name and token indexes and optional expiry.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thetc.auth.model.appauth import AppAuth
from tests.test_helpers import (
    assert_integrity_error,
    count_rows,
    create_and_verify_record,
    generate_test_datetime,
    generate_token,
)


@pytest.fixture
def sample_appauth_data():
    """Sample service token data for testing."""
    return {
        "name": "billing-service",
        "description": "Nightly invoice export",
        "token": generate_token(),
        "meta": {"scopes": ["invoices:read"], "owner": {"team": "billing"}},
        "expires_at": generate_test_datetime(60 * 24),
    }


class TestAppAuthModel:
    """Test suite for AppAuth model CRUD operations."""

    async def test_create_appauth(self, session: AsyncSession, sample_appauth_data):
        """Test creating a new AppAuth record."""
        await create_and_verify_record(session, AppAuth, sample_appauth_data)

    async def test_optional_fields(self, session: AsyncSession):
        """Test that description and expires_at may be absent."""
        record = AppAuth(name="minimal", token=generate_token())
        session.add(record)
        await session.commit()
        session.expunge_all()

        result = await session.execute(select(AppAuth).where(AppAuth.id == record.id))
        stored = result.scalar_one()
        assert stored.description is None
        assert stored.expires_at is None
        assert stored.meta == {}

    async def test_read_by_token(self, session: AsyncSession, sample_appauth_data):
        """Test reading AppAuth by token (unique index)."""
        session.add(AppAuth(**sample_appauth_data))
        await session.commit()

        result = await session.execute(
            select(AppAuth).where(AppAuth.token == sample_appauth_data["token"])
        )
        assert result.scalar_one().name == sample_appauth_data["name"]

    async def test_token_unique_constraint(
        self, session: AsyncSession, sample_appauth_data
    ):
        """Test that token values are unique."""
        session.add(AppAuth(**sample_appauth_data))
        await session.commit()

        duplicate = sample_appauth_data.copy()
        duplicate["name"] = "another-service"
        await assert_integrity_error(session, AppAuth, duplicate)
        assert await count_rows(session, AppAuth) == 1

    async def test_name_unique_constraint(
        self, session: AsyncSession, sample_appauth_data
    ):
        """Test that names are unique."""
        session.add(AppAuth(**sample_appauth_data))
        await session.commit()

        duplicate = sample_appauth_data.copy()
        duplicate["token"] = generate_token()
        await assert_integrity_error(session, AppAuth, duplicate)
        assert await count_rows(session, AppAuth) == 1

    async def test_repr_hides_token(self, sample_appauth_data):
        """Test that the token never appears in repr."""
        record = AppAuth(id=uuid.uuid4(), **sample_appauth_data)
        assert sample_appauth_data["token"] not in repr(record)


class TestAppAuthExpiry:
    """Test suite for AppAuth.is_expired."""

    def test_no_expiry_never_expires(self):
        record = AppAuth(name="svc", token="t", expires_at=None)
        assert not record.is_expired(datetime(9999, 1, 1, tzinfo=timezone.utc))

    def test_expired_at_instant(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        record = AppAuth(name="svc", token="t", expires_at=now)
        assert record.is_expired(now)
        assert not record.is_expired(now - timedelta(microseconds=1))

    def test_naive_now_rejected(self):
        record = AppAuth(name="svc", token="t", expires_at=None)
        with pytest.raises(ValueError):
            record.is_expired(datetime(2030, 1, 1))
