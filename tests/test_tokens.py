"""Unit tests for auth/tokens.py -- session verification and refresh.

Covers:
- live access token -> authenticated on its own, no refresh, refresh token optional
- access expired / missing / forged, refresh live -> new access token minted
- no live token: a signed but expired one -> expired, otherwise missing-identity
- both tokens signed but disagreeing on any claim -> token-mismatch
- verify_session never raises, whatever it is handed
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from conftest import ADMIN, LUIGI, MARIO, expired_token, foreign_token
from jose import jwt

from auth.models import Identity, TokenPair
from auth.tokens import (
    create_access_token,
    create_refresh_token,
    decode_token,
    issue_session,
    verify_session,
)
from core.config import get_settings

# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


class TestIssueSession:
    def test_pair_carries_identity_claims(self) -> None:
        tokens = issue_session(MARIO)
        for token in (tokens.access_token, tokens.refresh_token):
            claims = decode_token(token)
            assert claims is not None
            assert (claims["username"], claims["email"], claims["role"]) == ("mario", "mario@example.com", "Regular")

    def test_refresh_outlives_access(self) -> None:
        tokens = issue_session(MARIO)
        access_exp = decode_token(tokens.access_token)["exp"]
        refresh_exp = decode_token(tokens.refresh_token)["exp"]
        assert refresh_exp > access_exp

    def test_explicit_expiry_overrides_default(self) -> None:
        short = decode_token(create_access_token(MARIO, expire_seconds=5))["exp"]
        default = decode_token(create_access_token(MARIO))["exp"]
        assert short < default

    def test_decode_token_returns_none_for_garbage(self) -> None:
        assert decode_token("not.a.jwt") is None
        assert decode_token(foreign_token(MARIO)) is None


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerifySession:
    def test_live_pair_authenticates_without_refresh(self) -> None:
        check = verify_session(issue_session(ADMIN))
        assert check.authenticated
        assert check.identity == ADMIN
        assert not check.refreshed
        assert check.new_access_token is None

    def test_expired_access_is_refreshed_from_refresh_token(self) -> None:
        tokens = TokenPair(expired_token(MARIO), create_refresh_token(MARIO))
        check = verify_session(tokens)
        assert check.authenticated
        assert check.refreshed
        assert check.identity == MARIO
        claims = decode_token(check.new_access_token)
        assert claims["username"] == "mario"
        assert claims["email"] == "mario@example.com"

    def test_missing_access_is_refreshed(self) -> None:
        check = verify_session(TokenPair(None, create_refresh_token(MARIO)))
        assert check.authenticated
        assert check.refreshed

    def test_forged_access_is_replaced(self) -> None:
        """An access token signed with an unknown key is ignored, not compared."""
        tokens = TokenPair(foreign_token(LUIGI), create_refresh_token(MARIO))
        check = verify_session(tokens)
        assert check.authenticated
        assert check.refreshed
        assert check.identity == MARIO

    def test_expired_refresh_with_live_access_authenticates(self) -> None:
        """A live access token stands on its own; the refresh token is only needed to refresh."""
        tokens = TokenPair(create_access_token(MARIO), expired_token(MARIO))
        check = verify_session(tokens)
        assert check.authenticated
        assert check.identity == MARIO
        assert not check.refreshed

    def test_expired_refresh_without_access_requires_login(self) -> None:
        check = verify_session(TokenPair(None, expired_token(MARIO)))
        assert not check.authenticated
        assert check.cause == "expired"

    def test_both_expired(self) -> None:
        check = verify_session(TokenPair(expired_token(MARIO), expired_token(MARIO, seconds_ago=10)))
        assert not check.authenticated
        assert check.cause == "expired"

    def test_expired_access_without_refresh(self) -> None:
        check = verify_session(TokenPair(expired_token(MARIO), None))
        assert not check.authenticated
        assert check.cause == "expired"

    def test_live_access_without_refresh_authenticates(self) -> None:
        check = verify_session(TokenPair(create_access_token(MARIO), None))
        assert check.authenticated
        assert check.identity == MARIO
        assert not check.refreshed

    def test_no_tokens_at_all(self) -> None:
        check = verify_session(TokenPair())
        assert not check.authenticated
        assert check.cause == "missing-identity"

    def test_forged_refresh_is_ignored_beside_live_access(self) -> None:
        check = verify_session(TokenPair(create_access_token(MARIO), foreign_token(LUIGI)))
        assert check.authenticated
        assert check.identity == MARIO

    def test_forged_refresh_alone_is_missing_identity(self) -> None:
        check = verify_session(TokenPair(None, foreign_token(MARIO)))
        assert not check.authenticated
        assert check.cause == "missing-identity"

    def test_refresh_missing_claims_is_missing_identity(self) -> None:
        payload = {"username": "mario", "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
        refresh = jwt.encode(payload, get_settings().secret_key, algorithm="HS256")
        check = verify_session(TokenPair(None, refresh))
        assert not check.authenticated
        assert check.cause == "missing-identity"

    @pytest.mark.parametrize(
        "other",
        [
            Identity("luigi", "mario@example.com", "Regular"),
            Identity("mario", "luigi@example.com", "Regular"),
            Identity("mario", "mario@example.com", "Admin"),
        ],
    )
    def test_live_tokens_disagreeing_on_any_claim_mismatch(self, other: Identity) -> None:
        check = verify_session(TokenPair(create_access_token(other), create_refresh_token(MARIO)))
        assert not check.authenticated
        assert check.cause == "token-mismatch"

    def test_expired_access_disagreeing_with_refresh_is_mismatch(self) -> None:
        check = verify_session(TokenPair(expired_token(LUIGI), create_refresh_token(MARIO)))
        assert not check.authenticated
        assert check.cause == "token-mismatch"
        assert check.new_access_token is None

    @pytest.mark.parametrize("junk", ["", "abc", "a.b.c", "eyJhbGciOiJIUzI1NiJ9.e30."])
    def test_garbage_never_raises(self, junk: str) -> None:
        check = verify_session(TokenPair(junk, junk))
        assert not check.authenticated

    def test_live_access_disagreeing_with_expired_refresh_is_mismatch(self) -> None:
        check = verify_session(TokenPair(create_access_token(LUIGI), expired_token(MARIO)))
        assert not check.authenticated
        assert check.cause == "token-mismatch"
