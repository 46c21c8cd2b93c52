"""
auth/tokens.py -- Session token signing, verification and refresh.

Security design decisions:
  JWT: python-jose with HS256. Both tokens are signed with SECRET_KEY and
       carry username, email, role and expiry. The access token is short-lived,
       the refresh token long-lived; both are minted together by
       issue_session().

  Verification never raises. verify_session() folds every JWTError into an
       unauthenticated SessionCheck with a cause, and the caller decides what
       status code that becomes.

  Access first: a live access token authenticates on its own; the refresh
       token is only needed once the access token is missing or expired.

  Refresh: when the access token is missing, expired or otherwise invalid but
       the refresh token verifies, a replacement access token bound to the
       refresh identity is minted and returned in the SessionCheck. Nothing is
       written to a response here -- the caller threads the new token out.

  Consistency: when both tokens carry a valid signature (either may have
       expired) their claims must match. A pair that disagrees on username,
       email or role is rejected as token-mismatch.

SECRET_KEY: sourced from core.config.get_settings(), validated at startup.

Layer rule: no imports from ledger/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from auth.models import AuthCause, Identity, SessionCheck, TokenPair
from core.config import get_settings

logger = logging.getLogger("ledgerguard.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS = ("username", "email", "role")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(identity: Identity, duration: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = identity.to_claims()
    payload["exp"] = expire
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def create_access_token(identity: Identity, expire_seconds: int = 0) -> str:
    """Encode a signed short-lived access token.

    If expire_seconds is 0 (default), Settings.access_token_expire_seconds is used.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    return _encode(identity, duration)


def create_refresh_token(identity: Identity, expire_seconds: int = 0) -> str:
    """Encode a signed long-lived refresh token.

    If expire_seconds is 0 (default), Settings.refresh_token_expire_seconds is used.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.refresh_token_expire_seconds
    return _encode(identity, duration)


def issue_session(identity: Identity) -> TokenPair:
    """Mint a fresh (access, refresh) pair for an identity that has just logged in."""
    return TokenPair(
        access_token=create_access_token(identity),
        refresh_token=create_refresh_token(identity),
    )


def decode_token(token: str) -> dict | None:
    """Decode and verify a token. Returns the payload dict or None on any failure."""
    try:
        return jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None


def _identity_from(claims: dict) -> Identity | None:
    values = [claims.get(name) for name in _REQUIRED_CLAIMS]
    if not all(isinstance(v, str) and v for v in values):
        return None
    return Identity(*values)


def _read_token(token: str | None, kind: str) -> tuple[Identity | None, bool]:
    """Return (identity, live) for one session token.

    identity is the signed identity even when the token has expired, so the
    two tokens can still be checked against each other. live is True only for
    a token that verifies outright and carries every required claim.
    """
    if not token:
        return None, False
    try:
        claims = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
        live = True
    except ExpiredSignatureError:
        try:
            claims = jwt.decode(
                token,
                _settings.secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return None, False
        logger.debug("%s token expired", kind.capitalize())
        live = False
    except JWTError as exc:
        logger.debug("%s token rejected: %s", kind.capitalize(), exc)
        return None, False
    identity = _identity_from(claims)
    return identity, live and identity is not None


def _rejected(cause: AuthCause) -> SessionCheck:
    return SessionCheck(authenticated=False, cause=cause.value)


# ---------------------------------------------------------------------------
# Session verification
# ---------------------------------------------------------------------------


def verify_session(tokens: TokenPair) -> SessionCheck:
    """Authenticate a token pair, minting a new access token when only the refresh token is live.

    Outcomes:
      - unauthenticated, with cause missing-identity / expired / token-mismatch
      - authenticated from the access token (refreshed=False)
      - authenticated from the refresh token with a new access token (refreshed=True)
    """
    access_identity, access_live = _read_token(tokens.access_token, "access")
    refresh_identity, refresh_live = _read_token(tokens.refresh_token, "refresh")

    if access_identity is not None and refresh_identity is not None and access_identity != refresh_identity:
        logger.info("Session rejected: access and refresh tokens disagree for %s", refresh_identity.username)
        return _rejected(AuthCause.TOKEN_MISMATCH)

    if access_live:
        return SessionCheck(authenticated=True, identity=access_identity)

    if refresh_live:
        logger.debug("Access token refreshed for %s", refresh_identity.username)
        return SessionCheck(
            authenticated=True,
            identity=refresh_identity,
            refreshed=True,
            new_access_token=create_access_token(refresh_identity),
        )

    # Neither token is live. A signed but expired token means the session
    # lapsed; anything else means there was no usable session at all.
    if refresh_identity is not None or access_identity is not None:
        return _rejected(AuthCause.EXPIRED)
    return _rejected(AuthCause.MISSING_IDENTITY)
