"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only own the shape.

Layer rule: no imports from api/, client/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A local account. Created at registration and never mutated afterwards."""

    username: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class RefreshToken:
    """One persisted refresh token row.

    expires_at is an ISO-8601 UTC timestamp computed by the caller when the
    row is inserted. It is authoritative for revocation: a token whose row
    has expired is rejected even when its own signed exp claim is still in
    the future.
    """

    user_id: int
    token: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The decoded caller identity attached to a verified request."""

    id: int
    username: str
    issued_at: int | None = None
    expires_at: int | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
