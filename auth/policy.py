"""
auth/policy.py -- Access policies and the single evaluator that checks them.

An AccessPolicy is a tagged value (Simple, User, Admin, Group). evaluate()
checks one policy against an identity; authorize() combines a SessionCheck
with an ordered list of policies and returns the first success.

Callers supply the policies matching the operation's access rule. Where an
operation accepts more than one (e.g. Group-or-Admin) the order is the
caller's choice -- see Settings.group_policy_order.

Layer rule: no imports from ledger/.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from auth.models import AuthCause, Identity, SessionCheck
from core.errors import AuthzError


class AuthType(str, Enum):
    SIMPLE = "Simple"
    USER = "User"
    ADMIN = "Admin"
    GROUP = "Group"


@dataclass(frozen=True)
class AccessPolicy:
    auth_type: AuthType
    username: str | None = None  # User only
    emails: frozenset[str] = field(default_factory=frozenset)  # Group only

    @classmethod
    def simple(cls) -> AccessPolicy:
        return cls(AuthType.SIMPLE)

    @classmethod
    def user(cls, username: str) -> AccessPolicy:
        return cls(AuthType.USER, username=username)

    @classmethod
    def admin(cls) -> AccessPolicy:
        return cls(AuthType.ADMIN)

    @classmethod
    def group(cls, emails: Iterable[str]) -> AccessPolicy:
        return cls(AuthType.GROUP, emails=frozenset(emails))


@dataclass(frozen=True)
class AuthDecision:
    """Result of an authorization check.

    refreshed_token is set whenever the session check minted a new access
    token, whether or not the policy was satisfied, so the caller can always
    hand it back to the client.
    """

    authorized: bool
    cause: str | None = None
    identity: Identity | None = None
    refreshed_token: str | None = None

    def require(self) -> Identity:
        """Return the identity, or raise AuthzError with the decision's cause."""
        if not self.authorized or self.identity is None:
            raise AuthzError(self.cause or AuthCause.MISSING_IDENTITY.value)
        return self.identity


def evaluate(identity: Identity | None, policy: AccessPolicy) -> AuthDecision:
    """Check a single policy against an identity (None = unauthenticated)."""
    if identity is None:
        return AuthDecision(False, AuthCause.MISSING_IDENTITY.value)

    if policy.auth_type is AuthType.SIMPLE:
        cause = None
    elif policy.auth_type is AuthType.USER:
        cause = None if identity.username == policy.username else AuthCause.WRONG_IDENTITY
    elif policy.auth_type is AuthType.ADMIN:
        cause = None if identity.is_admin else AuthCause.NOT_ADMIN
    elif policy.auth_type is AuthType.GROUP:
        cause = None if identity.email in policy.emails else AuthCause.NOT_IN_GROUP
    else:
        raise ValueError(f"Unknown auth type: {policy.auth_type!r}")

    if cause is not None:
        return AuthDecision(False, cause.value, identity)
    return AuthDecision(True, None, identity)


def authorize(check: SessionCheck, *policies: AccessPolicy) -> AuthDecision:
    """Authorize a verified session against policies tried in order.

    The first satisfied policy wins. If none is satisfied the cause of the
    first policy is reported. A failed session check short-circuits with the
    verifier's cause.
    """
    if not policies:
        raise ValueError("authorize() needs at least one policy")

    refreshed = check.new_access_token if check.refreshed else None
    if not check.authenticated:
        return AuthDecision(False, check.cause or AuthCause.MISSING_IDENTITY.value, None, refreshed)

    first_failure: AuthDecision | None = None
    for policy in policies:
        decision = evaluate(check.identity, policy)
        if decision.authorized:
            return AuthDecision(True, None, check.identity, refreshed)
        if first_failure is None:
            first_failure = decision
    return AuthDecision(False, first_failure.cause, check.identity, refreshed)
