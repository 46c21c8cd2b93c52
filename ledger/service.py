"""
ledger/service.py -- Protected operations: verify -> authorize -> snapshot -> plan -> commit.

LedgerService is the caller the planners were written for. For every
operation it:

  1. verifies the session token pair and checks the operation's policies
  2. reads a snapshot from LedgerStore
  3. asks a pure planner for the change (any rejection raises here)
  4. applies the plan with one atomic store call

Nothing is written before step 4, so a rejected request leaves no partial
state. A refreshed access token is never written to a response from here --
it comes back in Outcome.refreshed_token for the outer layer to forward.

Errors: LedgerError subclasses propagate unchanged. A SQLAlchemyError raised
by a commit is logged and re-raised as InternalError with the driver message.
A commit that finds its target group already gone (LookupError from the
store) becomes NotFoundError, with nothing written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.models import TokenPair
from auth.policy import AccessPolicy, AuthDecision, authorize
from auth.tokens import verify_session
from core.config import Settings, get_settings
from core.errors import AuthzError, InternalError, NotFoundError, ValidationError
from ledger.categories import plan_creation, plan_deletion, plan_update
from ledger.groups import ensure_removable, plan_add, plan_create, plan_remove, validate_emails
from ledger.models import Category, Group
from ledger.store import LedgerStore
from ledger.users import plan_user_deletion

logger = logging.getLogger("ledgerguard.service")


@dataclass
class Outcome:
    """Result of a protected operation plus the access token to hand back, if one was minted."""

    data: Any
    refreshed_token: Optional[str] = None


def _group_dict(group: Group) -> dict:
    return {"name": group.name, "members": [asdict(m) for m in group.members]}


class LedgerService:
    def __init__(self, store: LedgerStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _authorize(self, tokens: TokenPair, *policies: AccessPolicy) -> AuthDecision:
        decision = authorize(verify_session(tokens), *policies)
        if not decision.authorized:
            logger.info(
                "Rejected %s: %s",
                decision.identity.username if decision.identity else "anonymous",
                decision.cause,
            )
            raise AuthzError(decision.cause)
        return decision

    def _group_policies(self, group: Group, via: Optional[str] = None) -> list[AccessPolicy]:
        """Group-or-Admin policies in configured order; via pins a single one."""
        order = [via] if via else self.settings.group_policy_order
        policies = []
        for tag in order:
            if tag == "Group":
                policies.append(AccessPolicy.group(group.emails))
            elif tag == "Admin":
                policies.append(AccessPolicy.admin())
            else:
                raise ValueError(f"Unknown group policy: {tag!r}")
        return policies

    def _commit(self, action: str, fn: Callable, *args):
        try:
            return fn(*args)
        except LookupError as exc:
            # the snapshot went stale: the target was deleted before the commit
            logger.warning("%s aborted: %s", action, exc)
            raise NotFoundError(str(exc)) from exc
        except SQLAlchemyError as exc:
            logger.exception("%s failed", action)
            raise InternalError(str(exc)) from exc

    def _require_group(self, name: str) -> Group:
        group = self.store.find_group_by_name(name)
        if group is None:
            raise NotFoundError(f"Group does not exist: {name}")
        return group

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self, tokens: TokenPair) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.simple())
        data = [{"type": c.type, "color": c.color} for c in self.store.find_categories()]
        return Outcome(data, decision.refreshed_token)

    def create_category(self, tokens: TokenPair, category_type: str, color: str) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.admin())
        category: Category = plan_creation(self.store.find_categories(), category_type, color)
        self._commit("create_category", self.store.create_category, category)
        logger.info("Category %s created by %s", category.type, decision.identity.username)
        return Outcome({"type": category.type, "color": category.color}, decision.refreshed_token)

    def update_category(self, tokens: TokenPair, old_type: str, new_type: str, color: str) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.admin())
        plan = plan_update(self.store.find_categories(), old_type, new_type, color)
        count = self._commit("update_category", self.store.apply_category_update, plan)
        logger.info("Category %s updated to %s (%d transactions)", old_type, new_type, count)
        return Outcome({"message": "Category edited successfully", "count": count}, decision.refreshed_token)

    def delete_categories(self, tokens: TokenPair, types: list[str]) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.admin())
        if types is None:
            raise ValidationError("A list of category types is required")
        plan = plan_deletion(self.store.find_categories(), types)
        count = self._commit(
            "delete_categories",
            self.store.apply_category_deletion,
            plan.final_delete_set,
            plan.survivor,
        )
        logger.info(
            "Deleted categories %s, %d transactions reassigned to %s",
            plan.final_delete_set,
            count,
            plan.survivor,
        )
        return Outcome(
            {
                "message": "Categories deleted",
                "count": count,
                "survivor": plan.survivor,
                "deleted": plan.final_delete_set,
            },
            decision.refreshed_token,
        )

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(self, tokens: TokenPair, name: str, emails: list[str]) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.simple())
        caller_email = decision.identity.email
        candidates = validate_emails(emails)
        lookup = candidates + ([caller_email] if caller_email not in candidates else [])
        plan = plan_create(
            name,
            candidates,
            caller_email,
            self.store.find_group_by_name(name),
            self.store.find_users_by_email(lookup),
            self.store.find_grouped_emails(lookup),
        )
        group = self._commit("create_group", self.store.create_group, plan)
        logger.info("Group %s created by %s with %d members", name, decision.identity.username, len(group.members))
        return Outcome(
            {
                "group": _group_dict(group),
                "already_in_group": plan.already_in_group,
                "members_not_found": plan.not_found,
            },
            decision.refreshed_token,
        )

    def get_group(self, tokens: TokenPair, name: str) -> Outcome:
        group = self._require_group(name)
        decision = self._authorize(tokens, *self._group_policies(group))
        return Outcome({"group": _group_dict(group)}, decision.refreshed_token)

    def list_groups(self, tokens: TokenPair) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.admin())
        return Outcome([_group_dict(g) for g in self.store.list_groups()], decision.refreshed_token)

    def add_members(self, tokens: TokenPair, name: str, emails: list[str], via: Optional[str] = None) -> Outcome:
        """Add members to a group. via="Group" or via="Admin" pins the policy to one route's rule."""
        group = self._require_group(name)
        decision = self._authorize(tokens, *self._group_policies(group, via))
        candidates = validate_emails(emails)
        plan = plan_add(
            group,
            candidates,
            self.store.find_users_by_email(candidates),
            self.store.find_grouped_emails(candidates),
        )
        updated = self._commit("add_members", self.store.apply_group_members, name, plan.members)
        logger.info("Added %d members to group %s", len(plan.to_add), name)
        return Outcome(
            {
                "group": _group_dict(updated),
                "already_in_group": plan.already_in_group,
                "members_not_found": plan.not_found,
            },
            decision.refreshed_token,
        )

    def remove_members(self, tokens: TokenPair, name: str, emails: list[str], via: Optional[str] = None) -> Outcome:
        group = self._require_group(name)
        decision = self._authorize(tokens, *self._group_policies(group, via))
        ensure_removable(group)
        candidates = validate_emails(emails)
        plan = plan_remove(group, candidates, self.store.find_users_by_email(candidates))
        updated = self._commit("remove_members", self.store.apply_group_members, name, plan.members)
        logger.info("Removed %d members from group %s", len(plan.to_remove), name)
        return Outcome(
            {
                "group": _group_dict(updated),
                "not_in_group": plan.not_in_group,
                "members_not_found": plan.not_found,
            },
            decision.refreshed_token,
        )

    def delete_group(self, tokens: TokenPair, name: str) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.admin())
        if not isinstance(name, str) or name.strip() == "":
            raise ValidationError("Group name is required")
        self._require_group(name)
        self._commit("delete_group", self.store.delete_group, name)
        logger.info("Group %s deleted by %s", name, decision.identity.username)
        return Outcome({"message": "Group deleted successfully"}, decision.refreshed_token)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, tokens: TokenPair, username: str) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.user(username), AccessPolicy.admin())
        user = self.store.find_user_by_username(username)
        if user is None:
            raise NotFoundError(f"User not found: {username}")
        return Outcome({"username": user.username, "email": user.email, "role": user.role}, decision.refreshed_token)

    def delete_user(self, tokens: TokenPair, email: str) -> Outcome:
        decision = self._authorize(tokens, AccessPolicy.admin())
        user = self.store.find_user_by_email(email) if isinstance(email, str) else None
        group = self.store.find_group_by_member(email) if user is not None else None
        plan = plan_user_deletion(email, user, group)
        deleted, from_group = self._commit("delete_user", self.store.apply_user_and_cascade_deletion, plan)
        logger.info("User %s deleted (%d transactions, group=%s)", plan.username, deleted, plan.group_name)
        return Outcome(
            {"deleted_transactions": deleted, "deleted_from_group": from_group},
            decision.refreshed_token,
        )
