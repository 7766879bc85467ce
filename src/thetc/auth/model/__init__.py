"""
Database Models

This package defines the persisted schema of the identity store using SQLAlchemy ORM.

Key Models:
- base.py: Declarative base, UTC timestamp and JSON document column types
- users.py: User identities with case-insensitive usernames
- sessions.py: Sessions owned by a user, with an absolute expiry
- appauth.py: Long-lived service tokens with an optional expiry

The data models follow these relationships:
- Session.user_id references User.id (no cascade; deletion of a referenced user is rejected)
- AppAuth is independent of both and shares only the storage engine

Identifiers are random UUIDs generated by the storage layer. The ``meta`` and ``data`` columns
hold opaque structured documents that are stored and returned verbatim.
"""
from thetc.auth.model.appauth import AppAuth
from thetc.auth.model.base import Base
from thetc.auth.model.sessions import Session
from thetc.auth.model.users import User

__all__ = ["AppAuth", "Base", "Session", "User"]
