"""
ledger/store.py -- SQLAlchemy-backed persistence layer for LedgerGuard.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in ledger/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. LedgerStore is the repository; the _row_to_*
functions are the mappers. The service never touches SQL directly.

Reads return snapshots for the planners. Each apply_* method takes a plan that
has already been validated and writes it inside a single transaction: either
every statement commits or, on any error, the connection context rolls the
whole unit back.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = LedgerStore("sqlite:///:memory:")
    plan = plan_deletion(store.find_categories(), ["health"])
    count = store.apply_category_deletion(plan.final_delete_set, plan.survivor)
    store.close()
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from ledger.models import (
    Category,
    CategoryUpdatePlan,
    CreateGroupPlan,
    Group,
    GroupMember,
    Transaction,
    User,
    UserDeletionPlan,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("role", String(30), nullable=False, server_default="Regular"),
    Column("created_at", String(32), nullable=False),
)

_categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", String(100), nullable=False, unique=True),
    Column("color", String(50), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False),
    Column("type", String(100), nullable=False),  # categories.type
    Column("amount", Float, nullable=False),
    Column("date", String(32), nullable=False),
)

_groups = Table(
    "groups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

# One row per membership. UNIQUE(email) enforces "a user is in at most one
# group" at the DB level; position preserves member order.
_group_members = Table(
    "group_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("group_id", Integer, ForeignKey("groups.id"), nullable=False),
    Column("email", String(255), nullable=False),
    Column("user_id", Integer),
    Column("position", Integer, nullable=False),
    UniqueConstraint("email", name="uq_member_email"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LedgerStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a user and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email is taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    role=user.role,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_user_by_username(self, username: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_users_by_email(self, emails: Iterable[str]) -> dict[str, User]:
        """Batch lookup. Returns {email: User} for the emails that have a user."""
        emails = list(emails)
        if not emails:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.email.in_(emails))).fetchall()
        return {row.email: _row_to_user(row) for row in rows}

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, category: Category) -> int:
        """Insert a category. created_at defaults to now when the dataclass leaves it empty."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _categories.insert().values(
                    type=category.type,
                    color=category.color,
                    created_at=category.created_at or _now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_categories(self) -> list[Category]:
        """Return every category in insertion order (the oldest-first tie-break)."""
        with self.engine.connect() as conn:
            rows = conn.execute(_categories.select().order_by(_categories.c.id)).fetchall()
        return [_row_to_category(r) for r in rows]

    def find_category_by_type(self, category_type: str) -> Optional[Category]:
        with self.engine.connect() as conn:
            row = conn.execute(_categories.select().where(_categories.c.type == category_type)).fetchone()
        return _row_to_category(row) if row is not None else None

    def apply_category_deletion(self, final_delete_set: Iterable[str], survivor_type: str) -> int:
        """Reassign transactions to the survivor and delete the categories, atomically.

        Returns the number of reassigned transactions.
        """
        doomed = list(final_delete_set)
        if not doomed:
            return 0
        with self.engine.connect() as conn:
            result = conn.execute(
                _transactions.update().where(_transactions.c.type.in_(doomed)).values(type=survivor_type)
            )
            conn.execute(_categories.delete().where(_categories.c.type.in_(doomed)))
            count = result.rowcount
            conn.commit()
        return count

    def apply_category_update(self, plan: CategoryUpdatePlan) -> int:
        """Rename/recolor a category and cascade the new type to its transactions.

        Returns the number of transactions carrying the category.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _categories.update()
                .where(_categories.c.type == plan.old_type)
                .values(type=plan.new_type, color=plan.color)
            )
            result = conn.execute(
                _transactions.update().where(_transactions.c.type == plan.old_type).values(type=plan.new_type)
            )
            count = result.rowcount
            conn.commit()
        return count

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(self, transaction: Transaction) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _transactions.insert().values(
                    username=transaction.username,
                    type=transaction.type,
                    amount=transaction.amount,
                    date=transaction.date or _now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_transactions(self, username: Optional[str] = None) -> list[Transaction]:
        query = _transactions.select().order_by(_transactions.c.id)
        if username is not None:
            query = query.where(_transactions.c.username == username)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_transaction(r) for r in rows]

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(self, plan: CreateGroupPlan) -> Group:
        """Insert the group and its members in one transaction.

        Raises sqlalchemy.exc.IntegrityError if the name is taken or a member
        already belongs to another group.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_groups.insert().values(name=plan.name, created_at=_now_iso()))
            group_id = result.inserted_primary_key[0]
            _insert_members(conn, group_id, plan.members)
            conn.commit()
        return Group(name=plan.name, members=list(plan.members))

    def find_group_by_name(self, name: str) -> Optional[Group]:
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.name == name)).fetchone()
            if row is None:
                return None
            return _load_group(conn, row)

    def find_group_by_member(self, email: str) -> Optional[Group]:
        """Return the group that email belongs to, if any."""
        with self.engine.connect() as conn:
            member = conn.execute(_group_members.select().where(_group_members.c.email == email)).fetchone()
            if member is None:
                return None
            row = conn.execute(_groups.select().where(_groups.c.id == member.group_id)).fetchone()
            return _load_group(conn, row)

    def find_grouped_emails(self, emails: Iterable[str]) -> set[str]:
        """Return the subset of emails that already belong to some group."""
        emails = list(emails)
        if not emails:
            return set()
        with self.engine.connect() as conn:
            rows = conn.execute(
                _group_members.select().where(_group_members.c.email.in_(emails))
            ).fetchall()
        return {row.email for row in rows}

    def list_groups(self) -> list[Group]:
        with self.engine.connect() as conn:
            rows = conn.execute(_groups.select().order_by(_groups.c.name)).fetchall()
            return [_load_group(conn, row) for row in rows]

    def apply_group_members(self, name: str, members: list[GroupMember]) -> Group:
        """Replace the group's membership with members, atomically, keeping their order.

        Raises LookupError if the group was deleted after the snapshot was read.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.name == name)).fetchone()
            if row is None:
                raise LookupError(f"Group disappeared during update: {name}")
            conn.execute(_group_members.delete().where(_group_members.c.group_id == row.id))
            _insert_members(conn, row.id, members)
            conn.commit()
        return Group(name=name, members=list(members))

    def delete_group(self, name: str) -> bool:
        """Delete a group and its membership rows. Returns False if it did not exist."""
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.name == name)).fetchone()
            if row is None:
                return False
            conn.execute(_group_members.delete().where(_group_members.c.group_id == row.id))
            conn.execute(_groups.delete().where(_groups.c.id == row.id))
            conn.commit()
        return True

    # ------------------------------------------------------------------
    # Cascades
    # ------------------------------------------------------------------

    def apply_user_and_cascade_deletion(self, plan: UserDeletionPlan) -> tuple[int, bool]:
        """Delete the user's transactions, update or delete their group, then the user.

        Returns (deleted_transactions, deleted_from_group). Raises LookupError, and
        commits nothing, if the planned group no longer exists.
        """
        with self.engine.connect() as conn:
            deleted = conn.execute(_transactions.delete().where(_transactions.c.username == plan.username)).rowcount
            if plan.group_name is not None:
                row = conn.execute(_groups.select().where(_groups.c.name == plan.group_name)).fetchone()
                if row is None:
                    raise LookupError(f"Group disappeared during update: {plan.group_name}")
                conn.execute(_group_members.delete().where(_group_members.c.group_id == row.id))
                if plan.delete_group:
                    conn.execute(_groups.delete().where(_groups.c.id == row.id))
                else:
                    _insert_members(conn, row.id, plan.remaining_members)
            conn.execute(_users.delete().where(_users.c.email == plan.email))
            conn.commit()
        return deleted, plan.group_name is not None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _insert_members(conn, group_id: int, members: list[GroupMember]) -> None:
    if not members:
        return
    conn.execute(
        _group_members.insert(),
        [
            {"group_id": group_id, "email": m.email, "user_id": m.user_id, "position": i}
            for i, m in enumerate(members)
        ],
    )


def _load_group(conn, row) -> Group:
    members = conn.execute(
        _group_members.select()
        .where(_group_members.c.group_id == row.id)
        .order_by(_group_members.c.position)
    ).fetchall()
    return Group(name=row.name, members=[GroupMember(email=m.email, user_id=m.user_id) for m in members])


def _row_to_user(row) -> User:
    return User(id=row.id, username=row.username, email=row.email, role=row.role)


def _row_to_category(row) -> Category:
    return Category(id=row.id, type=row.type, color=row.color, created_at=row.created_at)


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row.id,
        username=row.username,
        type=row.type,
        amount=row.amount,
        date=row.date,
    )
