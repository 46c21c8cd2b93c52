#!/usr/bin/env python3
"""
LedgerGuard -- admin command line for the category and group lifecycle.

Usage:
  python main.py issue-session admin@example.com
  python main.py delete-categories health transport
  python main.py add-members Family luigi@example.com peach@example.com
  python main.py remove-members Family luigi@example.com --via Admin
  python main.py delete-user mario@example.com

Every command except issue-session runs as the session given by
--access-token / --refresh-token. Results are printed as JSON; when the access
token had to be refreshed the new one is printed under "refreshed_token".

Environment variables:
  LEDGER_ACCESS_TOKEN   Default for --access-token.
  LEDGER_REFRESH_TOKEN  Default for --refresh-token.
  DATABASE_URL          SQLAlchemy URL of the ledger database.
  SECRET_KEY            Token signing key (or DEBUG=true for a throwaway one).
"""

import argparse
import json
import logging
import os
import sys
from typing import Optional

from auth.models import Identity, TokenPair
from auth.tokens import issue_session
from core.config import configure_logging
from core.errors import LedgerError
from ledger.service import LedgerService, Outcome
from ledger.store import LedgerStore

logger = logging.getLogger("ledgerguard.cli")


def _print_outcome(outcome: Outcome) -> None:
    payload = {"data": outcome.data}
    if outcome.refreshed_token:
        payload["refreshed_token"] = outcome.refreshed_token
    print(json.dumps(payload, indent=2))


def _issue_session(store: LedgerStore, email: str) -> int:
    user = store.find_user_by_email(email)
    if user is None:
        print(f"not_found: No user with email {email}", file=sys.stderr)
        return 1
    tokens = issue_session(Identity(user.username, user.email, user.role))
    print(json.dumps({"access_token": tokens.access_token, "refresh_token": tokens.refresh_token}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledgerguard",
        description="Category and group lifecycle administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", metavar="URL", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    parser.add_argument(
        "--access-token",
        default=os.environ.get("LEDGER_ACCESS_TOKEN"),
        help="Session access token (default: LEDGER_ACCESS_TOKEN)",
    )
    parser.add_argument(
        "--refresh-token",
        default=os.environ.get("LEDGER_REFRESH_TOKEN"),
        help="Session refresh token (default: LEDGER_REFRESH_TOKEN)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("issue-session", help="Mint an access/refresh pair for an existing user")
    p.add_argument("email")

    p = sub.add_parser("delete-categories", help="Delete categories, reassigning their transactions")
    p.add_argument("types", nargs="+", metavar="TYPE")

    for name, verb in (("add-members", "Add"), ("remove-members", "Remove")):
        p = sub.add_parser(name, help=f"{verb} group members by email")
        p.add_argument("group")
        p.add_argument("emails", nargs="+", metavar="EMAIL")
        p.add_argument(
            "--via",
            choices=["Group", "Admin"],
            default=None,
            help="Authorize only as a group member or only as an admin (default: configured order)",
        )

    p = sub.add_parser("delete-user", help="Delete a user with their transactions and group membership")
    p.add_argument("email")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)

    store = LedgerStore(args.db)
    try:
        if args.command == "issue-session":
            return _issue_session(store, args.email)

        service = LedgerService(store)
        tokens = TokenPair(args.access_token, args.refresh_token)
        if args.command == "delete-categories":
            outcome = service.delete_categories(tokens, args.types)
        elif args.command == "add-members":
            outcome = service.add_members(tokens, args.group, args.emails, via=args.via)
        elif args.command == "remove-members":
            outcome = service.remove_members(tokens, args.group, args.emails, via=args.via)
        else:
            outcome = service.delete_user(tokens, args.email)
    except LedgerError as exc:
        logger.debug("Command %s rejected", args.command, exc_info=True)
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()

    _print_outcome(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
