"""
errors.py — AppError hierarchy and error code registry.

Every failure returned by the Splitbook API carries:
  - a stable `category` (one of ErrorCategory) — the coarse failure class
  - a stable `code` (one of ErrorCode)         — the specific rule that failed
  - a human-readable `message`                   — prose, may change over time

Rules:
  - Do not raise strings or generic exceptions from service or route code.
  - Raise one of the four category subclasses below; they fix the category
    and default HTTP status so call sites stay short.
  - Error codes are a versioned contract. They do not change once published.
  - Store and collaborator error text is NEVER copied into a message. Log it,
    then raise UpstreamFailure with a generic description.
"""

from __future__ import annotations


class ErrorCategory:
    VALIDATION = "VALIDATION_FAILURE"
    NOT_FOUND  = "NOT_FOUND"
    FORBIDDEN  = "FORBIDDEN"
    UPSTREAM   = "UPSTREAM_FAILURE"
    AUTH       = "UNAUTHENTICATED"
    INTERNAL   = "INTERNAL"


class AppError(Exception):

    category: str = ErrorCategory.INTERNAL

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":     self.code,
            "category": self.category,
            "message":  self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ValidationFailure(AppError):
    """Malformed or inconsistent input. 422 for ledger rules, 400 for request shape."""

    category = ErrorCategory.VALIDATION

    def __init__(
            self,
            code: str,
            message: str,
            field: str | None = None,
            http_status: int = 422,
    ) -> None:
        super().__init__(code, message, http_status, field=field)


class NotFound(AppError):

    category = ErrorCategory.NOT_FOUND

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(code, message, 404, field=field)


class Forbidden(AppError):

    category = ErrorCategory.FORBIDDEN

    def __init__(self, message: str, code: str = "FORBIDDEN") -> None:
        super().__init__(code, message, 403)


class UpstreamFailure(AppError):
    """A record-store or collaborator call failed. Never retried automatically."""

    category = ErrorCategory.UPSTREAM

    def __init__(
            self,
            message: str = "A backing service is unavailable. Please try again later.",
            code: str = "UPSTREAM_FAILURE",
    ) -> None:
        super().__init__(code, message, 502)


class Unauthenticated(AppError):

    category = ErrorCategory.AUTH

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 401)


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_TIME_FILTER        = "INVALID_TIME_FILTER"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"

    # ── Ledger Rule Violations (422) ──────────────────────────────────────
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_DATE               = "INVALID_DATE"
    BLANK_FIELD                = "BLANK_FIELD"
    EMPTY_PARTICIPANTS         = "EMPTY_PARTICIPANTS"
    SPLIT_DETAILS_REQUIRED     = "SPLIT_DETAILS_REQUIRED"
    SPLIT_USER_NOT_PARTICIPANT = "SPLIT_USER_NOT_PARTICIPANT"
    SPLIT_DETAILS_MISSING      = "SPLIT_DETAILS_MISSING"
    NEGATIVE_SHARE             = "NEGATIVE_SHARE"
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    INVALID_RECEIPT            = "INVALID_RECEIPT"
    UNSUPPORTED_RECEIPT_TYPE   = "UNSUPPORTED_RECEIPT_TYPE"
    RECEIPT_TOO_LARGE          = "RECEIPT_TOO_LARGE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"

    # ── Authorization (403) ───────────────────────────────────────────────
    FORBIDDEN                  = "FORBIDDEN"
    NOT_GROUP_MEMBER           = "NOT_GROUP_MEMBER"
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    NOT_EXPENSE_PAYER          = "NOT_EXPENSE_PAYER"
    NOT_GROUP_CREATOR          = "NOT_GROUP_CREATOR"
    NOT_SETTLEMENT_PARTY       = "NOT_SETTLEMENT_PARTY"

    # ── Caller identity (401) ──────────────────────────────────────────────
    # 401 = we do not know who you are. 403 = we know, and the answer is no.
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"

    # ── Collaborator / System Errors (5xx) ────────────────────────────────
    UPSTREAM_FAILURE           = "UPSTREAM_FAILURE"
    INTERNAL_ERROR             = "INTERNAL_ERROR"
