"""
THETC Auth - Identity & Credential Store

This package implements the persistent store behind an authentication service: user identities,
login sessions tied to those users, and long-lived bearer tokens issued to non-human callers.
It contains no login flow and no password hashing; those belong to the service consuming it.

Key Components:
- model: SQLAlchemy models for the users, sessions and appauth tables
- store: Async repositories enforcing uniqueness, referential integrity and expiry rules
- username: Validation rules for the supported username kinds
- errors: Typed failures raised by the repositories
- app: Configuration, logging, metrics, the session reaper and the utility CLI

Invariants upheld by the store:
1. Usernames are unique case-insensitively, enforced by a unique index on lower(username).
2. Every session references an existing user, enforced by the engine's foreign key.
3. Service token names and token values are unique, enforced by unique indexes.
4. Expired records are never deleted implicitly; reaping is an explicit operation.
"""
