"""Typed failures raised by the identity store.

Every failure surfaces synchronously to the caller of the operation that triggered it. Uniqueness
and referential violations are permanent, so nothing raised here is ever retried by the store.
"""
from typing import Any

from sqlalchemy.exc import IntegrityError


class StoreException(Exception):
    """
    Base class for identity store failures.

    Subclasses provide static methods creating instances with a stable error code prefix, so
    log lines and error reports can be grouped by failure kind.
    """


class DuplicateIdentity(StoreException):
    @staticmethod
    def username(username: str) -> "DuplicateIdentity":
        """A user with the same case-insensitive username already exists."""
        return DuplicateIdentity(
            f"error-store-1000 Username already registered: {username!r}"
        )


class DuplicateName(StoreException):
    @staticmethod
    def appauth(name: str) -> "DuplicateName":
        """A service token with the same name already exists."""
        return DuplicateName(f"error-store-1001 Service name already registered: {name!r}")


class DuplicateToken(StoreException):
    @staticmethod
    def appauth() -> "DuplicateToken":
        """The token value is already issued. The value itself is never echoed."""
        return DuplicateToken("error-store-1002 Token value already issued")


class UnknownUser(StoreException):
    @staticmethod
    def user(user_id: Any) -> "UnknownUser":
        """A session was requested for a user that does not exist."""
        return UnknownUser(f"error-store-1100 Unknown user: {user_id}")


class NotFound(StoreException):
    @staticmethod
    def user(key: Any) -> "NotFound":
        return NotFound(f"error-store-1101 User not found: {key}")

    @staticmethod
    def session(session_id: Any) -> "NotFound":
        return NotFound(f"error-store-1102 Session not found: {session_id}")

    @staticmethod
    def appauth(key: Any = None) -> "NotFound":
        """No service token matches. Token lookups pass no key so the token is not echoed."""
        if key is None:
            return NotFound("error-store-1103 Service token not found")
        return NotFound(f"error-store-1103 Service token not found: {key}")


class Expired(StoreException):
    """The record exists but is past its validity. Callers treat it as access denied."""

    @staticmethod
    def session(session_id: Any) -> "Expired":
        return Expired(f"error-store-1200 Session has expired: {session_id}")

    @staticmethod
    def appauth(appauth_id: Any) -> "Expired":
        return Expired(f"error-store-1201 Service token has expired: {appauth_id}")


class HasDependentSessions(StoreException):
    @staticmethod
    def user(user_id: Any) -> "HasDependentSessions":
        """The user still owns sessions, so the foreign key rejected the deletion."""
        return HasDependentSessions(
            f"error-store-1300 User still has sessions: {user_id}"
        )


def violates(error: IntegrityError, table: str, column: str, index: str) -> bool:
    """
    Check whether an integrity error was raised by a specific unique index.

    PostgreSQL reports the index name, SQLite reports ``table.column``. Both are matched so the
    classification works on either engine without a follow-up read.
    """
    message = str(error.orig)
    return index in message or f"{table}.{column}" in message
