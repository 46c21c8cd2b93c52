"""
core/errors.py -- Error taxonomy shared by the planners, the store and the service.

Every error carries a machine-readable code and the HTTP status an outer layer
should map it to. The planners raise these before any mutating store call, so
a rejected request never leaves partial state behind.

  ValidationError  400  missing/blank/malformed input
  NotFoundError    400  referenced entity absent
  AuthzError       401  access policy not satisfied (carries the cause)
  ConflictError    400  duplicate category type, group name or membership
  InternalError    500  unexpected collaborator failure, message passed through
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(LedgerError):
    code = "validation"
    status_code = 400


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 400


class ConflictError(LedgerError):
    code = "conflict"
    status_code = 400


class InternalError(LedgerError):
    code = "internal"
    status_code = 500


class AuthzError(LedgerError):
    """Raised when the caller does not satisfy any of the required policies.

    cause is one of the AuthCause values from auth/models.py.
    """

    code = "unauthorized"
    status_code = 401

    def __init__(self, cause: str, message: str | None = None) -> None:
        super().__init__(message or f"Unauthorized ({cause})")
        self.cause = cause

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "cause": self.cause}


# ---------------------------------------------------------------------------
# Planner-specific rejections
# ---------------------------------------------------------------------------


class OnlyCategoryError(ValidationError):
    code = "only_category"


class UnknownCategoryError(NotFoundError):
    code = "unknown_category"


class AllInvalidError(ValidationError):
    code = "all_invalid"


class OnlyOneMemberError(ValidationError):
    code = "only_one_member"
