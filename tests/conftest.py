"""
tests/conftest.py -- Shared test fixtures for LedgerGuard.

This module provides:
  - store: an in-memory LedgerStore per test
  - seeded_store: users, categories, transactions and one group pre-loaded
  - service: a LedgerService over seeded_store
  - session_for(): mint a live (access, refresh) pair for a seeded user
  - expired_token(): a correctly signed token whose exp is in the past

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from jose import jwt

from auth.models import Identity, TokenPair
from auth.tokens import issue_session
from core.config import get_settings
from ledger.models import Category, CreateGroupPlan, Group, GroupMember, Transaction, User
from ledger.service import LedgerService
from ledger.store import LedgerStore

# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------

ADMIN = Identity(username="admin", email="admin@example.com", role="Admin")
MARIO = Identity(username="mario", email="mario@example.com", role="Regular")
LUIGI = Identity(username="luigi", email="luigi@example.com", role="Regular")
PEACH = Identity(username="peach", email="peach@example.com", role="Regular")
TOAD = Identity(username="toad", email="toad@example.com", role="Regular")

# t0 < t1 < t2
T0 = "2024-01-01T00:00:00+00:00"
T1 = "2024-02-01T00:00:00+00:00"
T2 = "2024-03-01T00:00:00+00:00"


def session_for(identity: Identity) -> TokenPair:
    return issue_session(identity)


def expired_token(identity: Identity, seconds_ago: int = 60) -> str:
    """Encode a token signed with the real key but already past its expiry."""
    payload = identity.to_claims()
    payload["exp"] = datetime.now(timezone.utc) - timedelta(seconds=seconds_ago)
    return jwt.encode(payload, get_settings().secret_key, algorithm="HS256")


def foreign_token(identity: Identity) -> str:
    """Encode a live token signed with a key the application does not know."""
    payload = identity.to_claims()
    payload["exp"] = datetime.now(timezone.utc) + timedelta(hours=1)
    return jwt.encode(payload, "f" * 64, algorithm="HS256")


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[LedgerStore, None, None]:
    s = LedgerStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def seeded_store(store: LedgerStore) -> LedgerStore:
    """Store with five users, three categories (food oldest), five transactions and one group.

    Group "Family" holds mario and luigi, in that order. peach and toad are
    not in any group.
    """
    ids = {}
    for identity in (ADMIN, MARIO, LUIGI, PEACH, TOAD):
        ids[identity.email] = store.create_user(User(identity.username, identity.email, identity.role))

    store.create_category(Category(type="food", color="red", created_at=T0))
    store.create_category(Category(type="health", color="green", created_at=T1))
    store.create_category(Category(type="transport", color="blue", created_at=T2))

    store.create_transaction(Transaction(username="mario", type="food", amount=10.0))
    store.create_transaction(Transaction(username="mario", type="health", amount=20.0))
    store.create_transaction(Transaction(username="mario", type="transport", amount=30.0))
    store.create_transaction(Transaction(username="luigi", type="health", amount=5.5))
    store.create_transaction(Transaction(username="peach", type="transport", amount=-3.0))

    store.create_group(
        CreateGroupPlan(
            name="Family",
            members=[
                GroupMember(email=MARIO.email, user_id=ids[MARIO.email]),
                GroupMember(email=LUIGI.email, user_id=ids[LUIGI.email]),
            ],
            already_in_group=[],
            not_found=[],
        )
    )
    return store


@pytest.fixture
def service(seeded_store: LedgerStore) -> LedgerService:
    return LedgerService(seeded_store)


def family(store: LedgerStore) -> Group:
    group = store.find_group_by_name("Family")
    assert group is not None
    return group
