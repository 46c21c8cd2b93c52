"""
ledger/categories.py -- Category lifecycle planning.

Pure functions over a snapshot of categories. Nothing here touches the store:
the caller reads the snapshot, asks for a plan, and hands the plan to
LedgerStore for a single atomic commit. Every rejection therefore happens
before any mutating call.

Deletion (N = categories in the store, T = distinct types requested):
  N == 1      reject, the only category can never be deleted
  N >  T      survivor = oldest category not in T, delete all of T
  N == T      survivor = oldest category overall; it is pinned and silently
              dropped from the delete set

Transactions whose type is in the delete set are reassigned to the survivor,
never deleted, so no transaction is left pointing at a missing category.
"""

from __future__ import annotations

from collections.abc import Sequence

from core.errors import (
    ConflictError,
    NotFoundError,
    OnlyCategoryError,
    UnknownCategoryError,
    ValidationError,
)
from ledger.models import Category, CategoryUpdatePlan, DeletionPlan


def _is_blank(value) -> bool:
    return not isinstance(value, str) or value.strip() == ""


def oldest(categories: Sequence[Category]) -> Category:
    """Oldest category by created_at; ties go to the earlier position in the sequence."""
    if not categories:
        raise ValueError("oldest() of an empty sequence")
    _, category = min(enumerate(categories), key=lambda pair: (pair[1].created_at, pair[0]))
    return category


def plan_deletion(all_categories: Sequence[Category], to_delete: Sequence[str]) -> DeletionPlan:
    """Compute the survivor and the final delete set for a category deletion.

    Raises:
        OnlyCategoryError:    the store holds exactly one category
        ValidationError:      to_delete is empty or has a blank entry
        UnknownCategoryError: an entry is not a known category type
    """
    if len(all_categories) == 1:
        raise OnlyCategoryError("Cannot delete the only category")
    if not to_delete:
        raise ValidationError("No category types to delete")
    if any(_is_blank(t) for t in to_delete):
        raise ValidationError("Category types must not be blank")

    known = {c.type for c in all_categories}
    requested: list[str] = []
    for category_type in to_delete:
        if category_type not in known:
            raise UnknownCategoryError(f"Category does not exist: {category_type}")
        if category_type not in requested:
            requested.append(category_type)

    if len(all_categories) > len(requested):
        remaining = [c for c in all_categories if c.type not in requested]
        survivor = oldest(remaining)
        return DeletionPlan(survivor=survivor.type, final_delete_set=requested)

    # N == T: the oldest category is pinned and excluded from deletion
    survivor = oldest(all_categories)
    final = [t for t in requested if t != survivor.type]
    return DeletionPlan(survivor=survivor.type, final_delete_set=final)


def plan_creation(all_categories: Sequence[Category], category_type: str, color: str) -> Category:
    """Validate a new category against the snapshot and return it (created_at unset)."""
    if _is_blank(category_type) or _is_blank(color):
        raise ValidationError("Category type and color are required")
    if any(c.type == category_type for c in all_categories):
        raise ConflictError(f"Category already exists: {category_type}")
    return Category(type=category_type, color=color)


def plan_update(
    all_categories: Sequence[Category],
    old_type: str,
    new_type: str,
    color: str,
) -> CategoryUpdatePlan:
    """Plan a rename and/or recolor.

    A rename cascades new_type onto every transaction of old_type when the
    store applies the plan.
    """
    if _is_blank(new_type) or _is_blank(color):
        raise ValidationError("Category type and color are required")
    types = {c.type for c in all_categories}
    if old_type not in types:
        raise NotFoundError(f"Category does not exist: {old_type}")
    if new_type != old_type and new_type in types:
        raise ConflictError(f"Category already exists: {new_type}")
    return CategoryUpdatePlan(old_type=old_type, new_type=new_type, color=color)
