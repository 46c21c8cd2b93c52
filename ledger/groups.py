"""
ledger/groups.py -- Group membership planning.

Every operation runs the same stages:

  Validating  -> every email is non-blank and shaped like local@domain.tld;
                 one bad email rejects the whole request
  Resolving   -> each email is classified against the snapshot
  Committing  -> the caller hands the plan's resulting member list to
                 LedgerStore.apply_group_members() (or create_group())

Any failure raises before Committing, so the store never sees a partial change.

Snapshots are plain mappings: users maps email -> User for every email the
caller looked up, grouped_emails holds every looked-up email that already
belongs to some group.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable, Mapping

from core.errors import AllInvalidError, ConflictError, OnlyOneMemberError, ValidationError
from ledger.models import (
    EMAIL_PATTERN,
    AddPlan,
    CreateGroupPlan,
    Group,
    GroupMember,
    RemovePlan,
    User,
)

_EMAIL_RE = re.compile(EMAIL_PATTERN)


def is_valid_email(email) -> bool:
    return isinstance(email, str) and bool(_EMAIL_RE.match(email))


def validate_emails(emails) -> list[str]:
    """Validate and de-duplicate candidate emails, keeping first-occurrence order.

    A single string is accepted as a one-element list. Raises ValidationError
    on a missing list, a blank entry or a malformed entry.
    """
    if emails is None:
        raise ValidationError("A list of emails is required")
    if isinstance(emails, str):
        emails = [emails]
    seen: list[str] = []
    for email in emails:
        if not isinstance(email, str) or email.strip() == "":
            raise ValidationError("At least one of the member emails is an empty string")
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"Not a valid email address: {email}")
        if email not in seen:
            seen.append(email)
    return seen


def _classify_for_enrolment(
    emails: Iterable[str],
    users: Mapping[str, User],
    grouped: Collection[str],
) -> tuple[list[GroupMember], list[str], list[str]]:
    to_add: list[GroupMember] = []
    already_in_group: list[str] = []
    not_found: list[str] = []
    for email in emails:
        user = users.get(email)
        if user is None:
            not_found.append(email)
        elif email in grouped:
            already_in_group.append(email)
        else:
            to_add.append(GroupMember(email=email, user_id=user.id))
    return to_add, already_in_group, not_found


def plan_add(
    group: Group,
    candidates,
    users: Mapping[str, User],
    grouped_emails: Collection[str],
) -> AddPlan:
    """Plan adding members to an existing group.

    An email already in any group (this one included) is reported in
    already_in_group; an email with no user is reported in not_found.
    Raises AllInvalidError when nobody can be added.
    """
    emails = validate_emails(candidates)
    grouped = set(grouped_emails) | set(group.emails)
    to_add, already_in_group, not_found = _classify_for_enrolment(emails, users, grouped)
    if not to_add:
        raise AllInvalidError("All the provided emails are already in a group or do not exist")
    return AddPlan(
        to_add=to_add,
        already_in_group=already_in_group,
        not_found=not_found,
        members=list(group.members) + to_add,
    )


def ensure_removable(group: Group) -> None:
    """Raise OnlyOneMemberError for a group that cannot lose any member."""
    if len(group.members) == 1:
        raise OnlyOneMemberError(f"Group {group.name} has only one member")


def plan_remove(group: Group, candidates, users: Mapping[str, User]) -> RemovePlan:
    """Plan removing members from a group without ever emptying it.

    Raises OnlyOneMemberError for a single-member group, before anything else.
    When the request names every current member and nothing else, the first
    requested email is kept in the group.
    """
    ensure_removable(group)
    emails = validate_emails(candidates)

    current = set(group.emails)
    to_remove: list[str] = []
    not_in_group: list[str] = []
    not_found: list[str] = []
    for email in emails:
        if email not in users:
            not_found.append(email)
        elif email not in current:
            not_in_group.append(email)
        else:
            to_remove.append(email)

    if not to_remove:
        raise AllInvalidError("None of the provided emails belong to the group")
    if len(to_remove) == len(group.members) and not not_in_group and not not_found:
        to_remove = to_remove[1:]

    removed = set(to_remove)
    return RemovePlan(
        to_remove=to_remove,
        not_in_group=not_in_group,
        not_found=not_found,
        members=[m for m in group.members if m.email not in removed],
    )


def plan_create(
    name: str,
    candidates,
    caller_email: str,
    existing_group: Group | None,
    users: Mapping[str, User],
    grouped_emails: Collection[str],
) -> CreateGroupPlan:
    """Plan a new group. The caller is always enrolled.

    Raises:
        ValidationError: blank name or a malformed email
        ConflictError:   the name is taken, or the caller already belongs to a group
        AllInvalidError: nobody besides the caller can be enrolled
    """
    if not isinstance(name, str) or name.strip() == "":
        raise ValidationError("Group name cannot be an empty string")
    if existing_group is not None:
        raise ConflictError(f"Group with same name already exists: {name}")
    emails = validate_emails(candidates)
    if caller_email not in emails:
        emails.append(caller_email)

    to_add, already_in_group, not_found = _classify_for_enrolment(emails, users, set(grouped_emails))
    if not any(m.email != caller_email for m in to_add):
        raise AllInvalidError("All member emails either do not exist or are already in a group")
    if caller_email in already_in_group:
        raise ConflictError("The calling user is already in a group")
    return CreateGroupPlan(
        name=name,
        members=to_add,
        already_in_group=already_in_group,
        not_found=not_found,
    )
