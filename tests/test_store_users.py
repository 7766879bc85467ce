"""
Tests for UserDirectory in thetc.auth.store.users

Tests cover registration, case-insensitive identity, lookups, updates and the deletion policy.
"""

import uuid
from datetime import timedelta

import pytest
from pydantic import ValidationError

from thetc.auth.errors import DuplicateIdentity, HasDependentSessions, NotFound
from thetc.auth.store import IdentityStore
from thetc.auth.store.users import UserDirectory
from thetc.auth.username import UsernameKind


class TestCreateUser:
    async def test_create_user(self, store: IdentityStore):
        user = await store.users.create_user("Alice", "hash-1", {"plan": "pro"})

        assert isinstance(user.id, uuid.UUID)
        assert user.username == "Alice"
        assert user.password_hash == "hash-1"
        assert user.meta == {"plan": "pro"}

    async def test_meta_defaults_to_empty(self, store: IdentityStore):
        user = await store.users.create_user("bob", "hash")
        assert user.meta == {}
        assert (await store.users.get_user_by_id(user.id)).meta == {}

    async def test_username_is_trimmed(self, store: IdentityStore):
        user = await store.users.create_user("  carol  ", "hash")
        assert user.username == "carol"

    @pytest.mark.parametrize(
        "first,second",
        [("Alice", "alice"), ("alice", "ALICE"), ("MiXeD.Case", "mixed.case")],
    )
    async def test_case_variants_collide(self, store: IdentityStore, first, second):
        await store.users.create_user(first, "hash")

        with pytest.raises(DuplicateIdentity):
            await store.users.create_user(second, "other-hash")

        user = await store.users.get_user_by_username(second)
        assert user.username == first
        assert user.password_hash == "hash"

    async def test_invalid_username_rejected(self, store: IdentityStore):
        with pytest.raises(ValidationError):
            await store.users.create_user("has space", "hash")

        with pytest.raises(NotFound):
            await store.users.get_user_by_username("has space")

    async def test_empty_password_hash_rejected(self, store: IdentityStore):
        with pytest.raises(ValidationError):
            await store.users.create_user("dave", "")

    async def test_email_usernames(self, session_maker):
        users = UserDirectory(session_maker, UsernameKind.EMAIL)

        user = await users.create_user("Erin@Example.com", "hash")
        assert user.username == "Erin@Example.com"

        with pytest.raises(DuplicateIdentity):
            await users.create_user("erin@example.com", "hash")

        with pytest.raises(ValidationError):
            await users.create_user("not-an-email", "hash")


class TestGetUser:
    async def test_get_by_username_case_insensitive(self, store: IdentityStore):
        created = await store.users.create_user("Alice", "hash")

        for probe in ("Alice", "alice", "ALICE", " alice "):
            found = await store.users.get_user_by_username(probe)
            assert found.id == created.id

    async def test_get_by_id(self, store: IdentityStore):
        created = await store.users.create_user("frank", "hash", {"a": [1, {"b": 2}]})

        found = await store.users.get_user_by_id(created.id)
        assert found.username == "frank"
        assert found.meta == {"a": [1, {"b": 2}]}

    async def test_missing_user(self, store: IdentityStore):
        with pytest.raises(NotFound):
            await store.users.get_user_by_id(uuid.uuid4())

        with pytest.raises(NotFound):
            await store.users.get_user_by_username("nobody")


class TestUpdateUser:
    async def test_update_meta(self, store: IdentityStore):
        user = await store.users.create_user("grace", "hash", {"old": True})

        await store.users.update_meta(user.id, {"new": {"nested": [1, 2]}})

        assert (await store.users.get_user_by_id(user.id)).meta == {
            "new": {"nested": [1, 2]}
        }

    @pytest.mark.parametrize("meta", [None, [], "text"])
    async def test_update_meta_requires_object(self, store: IdentityStore, meta):
        user = await store.users.create_user("ken", "hash", {"kept": True})

        with pytest.raises(ValueError):
            await store.users.update_meta(user.id, meta)

        assert (await store.users.get_user_by_id(user.id)).meta == {"kept": True}

    async def test_update_meta_missing_user(self, store: IdentityStore):
        with pytest.raises(NotFound):
            await store.users.update_meta(uuid.uuid4(), {})

    async def test_update_password_hash(self, store: IdentityStore):
        user = await store.users.create_user("heidi", "old-hash")

        await store.users.update_password_hash(user.id, "new-hash")

        assert (await store.users.get_user_by_id(user.id)).password_hash == "new-hash"

    async def test_update_password_hash_missing_user(self, store: IdentityStore):
        with pytest.raises(NotFound):
            await store.users.update_password_hash(uuid.uuid4(), "hash")


class TestDeleteUser:
    async def test_delete_user(self, store: IdentityStore):
        user = await store.users.create_user("ivan", "hash")

        await store.users.delete_user(user.id)

        with pytest.raises(NotFound):
            await store.users.get_user_by_id(user.id)

    async def test_delete_missing_user(self, store: IdentityStore):
        with pytest.raises(NotFound):
            await store.users.delete_user(uuid.uuid4())

    async def test_delete_rejected_while_sessions_exist(self, store: IdentityStore):
        user = await store.users.create_user("judy", "hash")
        session = await store.sessions.create_session(user.id, timedelta(hours=1))

        with pytest.raises(HasDependentSessions):
            await store.users.delete_user(user.id)

        # Nothing changed: the user and the session are both still there.
        assert (await store.users.get_user_by_id(user.id)).id == user.id
        assert (await store.sessions.get_session(session.id)).user_id == user.id

    async def test_delete_rejected_for_expired_sessions_too(self, store: IdentityStore):
        user = await store.users.create_user("mallory", "hash")
        await store.sessions.create_session(user.id, timedelta(seconds=-1))

        with pytest.raises(HasDependentSessions):
            await store.users.delete_user(user.id)

    async def test_delete_after_sessions_removed(self, store: IdentityStore):
        user = await store.users.create_user("niaj", "hash")
        await store.sessions.create_session(user.id, timedelta(hours=1))
        await store.sessions.create_session(user.id, timedelta(hours=2))

        assert await store.sessions.delete_sessions_for_user(user.id) == 2
        await store.users.delete_user(user.id)

        with pytest.raises(NotFound):
            await store.users.get_user_by_id(user.id)

    async def test_username_reusable_after_delete(self, store: IdentityStore):
        user = await store.users.create_user("Olivia", "hash")
        await store.users.delete_user(user.id)

        again = await store.users.create_user("olivia", "hash")
        assert again.id != user.id
