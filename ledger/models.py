"""
ledger/models.py -- Domain dataclasses for categories, transactions, users and groups.

These are pure data containers with zero logic. The planning rules live in
ledger/categories.py, ledger/groups.py and ledger/users.py; persistence lives
in ledger/store.py.

Plan dataclasses are the output of the planners: a fully computed change that
the store applies as one unit of work.
"""

from dataclasses import dataclass, field
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# local@domain.tld, no whitespace, exactly one @ on each side of the split.
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


@dataclass
class User:
    username: str
    email: str
    role: str = "Regular"  # "Regular" | "Admin"
    id: Optional[int] = None


@dataclass
class Category:
    """A transaction category. type is the identity and the transaction foreign key.

    created_at is an ISO 8601 UTC string; oldest-first ordering compares it
    lexically, so every value must use the same format.
    """

    type: str
    color: str
    created_at: str = ""
    id: Optional[int] = None


@dataclass
class Transaction:
    username: str
    type: str  # Category.type
    amount: float
    date: str = ""  # ISO 8601
    id: Optional[int] = None


@dataclass(frozen=True)
class GroupMember:
    email: str
    user_id: Optional[int] = None


@dataclass
class Group:
    name: str
    members: list[GroupMember] = field(default_factory=list)

    @property
    def emails(self) -> list[str]:
        return [m.email for m in self.members]


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass
class DeletionPlan:
    """Categories to delete and the survivor that absorbs their transactions.

    final_delete_set keeps request order. It never contains survivor.
    """

    survivor: str
    final_delete_set: list[str]


@dataclass
class CategoryUpdatePlan:
    old_type: str
    new_type: str
    color: str


@dataclass
class AddPlan:
    to_add: list[GroupMember]
    already_in_group: list[str]
    not_found: list[str]
    members: list[GroupMember]  # resulting membership, existing order then new


@dataclass
class RemovePlan:
    to_remove: list[str]
    not_in_group: list[str]
    not_found: list[str]
    members: list[GroupMember]  # resulting membership


@dataclass
class CreateGroupPlan:
    name: str
    members: list[GroupMember]
    already_in_group: list[str]
    not_found: list[str]


@dataclass
class UserDeletionPlan:
    """Cascade for removing one user.

    group_name is None when the user belongs to no group. delete_group is True
    when the user is that group's last member; remaining_members is the group's
    membership otherwise.
    """

    username: str
    email: str
    group_name: Optional[str] = None
    delete_group: bool = False
    remaining_members: list[GroupMember] = field(default_factory=list)
