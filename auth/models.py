"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Tokens and policies do
the work; these only carry shape.

Layer rule: no imports from ledger/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

ADMIN_ROLE = "Admin"
REGULAR_ROLE = "Regular"


class AuthCause(str, Enum):
    """Why a request was not authorized. Values are the wire strings."""

    MISSING_IDENTITY = "missing-identity"
    TOKEN_MISMATCH = "token-mismatch"
    EXPIRED = "expired"
    WRONG_IDENTITY = "wrong-identity"
    NOT_ADMIN = "not-admin"
    NOT_IN_GROUP = "not-in-group"


@dataclass(frozen=True)
class Identity:
    """The claims both session tokens carry. Frozen so it can be compared and hashed."""

    username: str
    email: str
    role: str  # "Regular" | "Admin"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def to_claims(self) -> dict:
        return {"username": self.username, "email": self.email, "role": self.role}


@dataclass(frozen=True)
class TokenPair:
    """An (access, refresh) session. Either side may be absent, e.g. an expired cookie."""

    access_token: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class SessionCheck:
    """Outcome of verify_session().

    authenticated=False carries a cause and nothing else.
    refreshed=True means new_access_token must be handed back to the client.
    """

    authenticated: bool
    identity: Identity | None = None
    refreshed: bool = False
    new_access_token: str | None = None
    cause: str | None = None
