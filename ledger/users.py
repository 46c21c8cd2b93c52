"""
ledger/users.py -- User deletion planning.

Deleting a user cascades: their transactions are deleted, they leave their
group, and a group they were the last member of is deleted with them. Admins
are never deleted through this path.
"""

from __future__ import annotations

from auth.models import ADMIN_ROLE
from core.errors import NotFoundError, ValidationError
from ledger.groups import is_valid_email
from ledger.models import Group, User, UserDeletionPlan


def plan_user_deletion(email: str, user: User | None, group: Group | None) -> UserDeletionPlan:
    """Plan the cascade for deleting the user that owns email.

    user and group are the snapshot reads for that email (group is the one
    the user belongs to, if any).
    """
    if not isinstance(email, str) or email.strip() == "":
        raise ValidationError("Email is required")
    if not is_valid_email(email):
        raise ValidationError(f"Not a valid email address: {email}")
    if user is None:
        raise NotFoundError(f"No user with email {email}")
    if user.role == ADMIN_ROLE:
        raise ValidationError("Admin users cannot be deleted")

    plan = UserDeletionPlan(username=user.username, email=email)
    if group is None:
        return plan
    plan.group_name = group.name
    remaining = [m for m in group.members if m.email != email]
    if remaining:
        plan.remaining_members = remaining
    else:
        plan.delete_group = True
    return plan
