"""Tests for the admin command line in main.py, run against a SQLite file."""

from __future__ import annotations

import json

import pytest
from conftest import ADMIN, LUIGI, MARIO, PEACH, T0, T1, expired_token, session_for

from auth.tokens import create_refresh_token
from ledger.models import Category, CreateGroupPlan, GroupMember, Transaction, User
from ledger.store import LedgerStore
from main import main


@pytest.fixture
def db_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'ledger.db'}"
    store = LedgerStore(url)
    for identity in (ADMIN, MARIO, LUIGI, PEACH):
        store.create_user(User(identity.username, identity.email, identity.role))
    store.create_category(Category("food", "red", created_at=T0))
    store.create_category(Category("health", "green", created_at=T1))
    store.create_transaction(Transaction("mario", "health", 12.0))
    store.create_group(CreateGroupPlan("Family", [GroupMember(MARIO.email), GroupMember(LUIGI.email)], [], []))
    store.close()
    return url


def _as(identity) -> list[str]:
    tokens = session_for(identity)
    return ["--access-token", tokens.access_token, "--refresh-token", tokens.refresh_token]


class TestCli:
    def test_issue_session(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        assert main(["--db", db_url, "issue-session", MARIO.email]) == 0
        out = json.loads(capsys.readouterr().out)
        assert set(out) == {"access_token", "refresh_token"}

    def test_issue_session_unknown_user(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        assert main(["--db", db_url, "issue-session", "ghost@example.com"]) == 1
        assert "not_found" in capsys.readouterr().err

    def test_delete_categories(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        assert main(["--db", db_url, *_as(ADMIN), "delete-categories", "health"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["data"]["survivor"] == "food"
        assert out["data"]["count"] == 1
        assert "refreshed_token" not in out

    def test_refreshed_token_is_printed(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        argv = [
            "--db", db_url,
            "--access-token", expired_token(ADMIN),
            "--refresh-token", create_refresh_token(ADMIN),
            "delete-categories", "health",
        ]
        assert main(argv) == 0
        assert "refreshed_token" in json.loads(capsys.readouterr().out)

    def test_rejection_goes_to_stderr(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        assert main(["--db", db_url, *_as(MARIO), "delete-categories", "health"]) == 1
        assert "unauthorized: Unauthorized (not-admin)" in capsys.readouterr().err

    def test_add_members_via_group(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        argv = ["--db", db_url, *_as(LUIGI), "add-members", "Family", PEACH.email, "--via", "Group"]
        assert main(argv) == 0
        members = json.loads(capsys.readouterr().out)["data"]["group"]["members"]
        assert [m["email"] for m in members] == [MARIO.email, LUIGI.email, PEACH.email]

    def test_remove_members(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        argv = ["--db", db_url, *_as(ADMIN), "remove-members", "Family", MARIO.email, LUIGI.email]
        assert main(argv) == 0
        members = json.loads(capsys.readouterr().out)["data"]["group"]["members"]
        assert [m["email"] for m in members] == [MARIO.email]

    def test_delete_user(self, db_url: str, capsys: pytest.CaptureFixture) -> None:
        assert main(["--db", db_url, *_as(ADMIN), "delete-user", MARIO.email]) == 0
        data = json.loads(capsys.readouterr().out)["data"]
        assert data == {"deleted_transactions": 1, "deleted_from_group": True}

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            main([])
