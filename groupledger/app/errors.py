"""
errors.py — AppError base class and error/warning code registries.

Every error raised by the ledger engine or returned by the host API uses a code
defined here. Do not raise strings or generic exceptions from service code.

  - Error codes are a contract with callers. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Warnings never block an operation; they travel alongside a successful
    result in a `warnings` list.
"""

from __future__ import annotations


class AppError(Exception):

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
        self.field       = field  # which input field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class StoreUnavailable(AppError):
    """
    The key-value store could not be read or written.

    Raised by store implementations; the ledger catches it only when deciding
    whether a separate summary write should be reported as partial success.
    """

    def __init__(self, message: str = "The ledger store is unavailable.") -> None:
        super().__init__(ErrorCode.STORE_UNAVAILABLE, message, 503)


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CATEGORY           = "INVALID_CATEGORY"
    INVALID_SPLIT_METHOD       = "INVALID_SPLIT_METHOD"
    DUPLICATE_PARTICIPANT      = "DUPLICATE_PARTICIPANT"
    INVALID_EXCHANGE_RATE      = "INVALID_EXCHANGE_RATE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    RECORD_NOT_FOUND           = "RECORD_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    RATE_NOT_FOUND             = "RATE_NOT_FOUND"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    MEMBER_HAS_BALANCE         = "MEMBER_HAS_BALANCE"
    MEMBER_HAS_HISTORY         = "MEMBER_HAS_HISTORY"
    CONCURRENT_MODIFICATION    = "CONCURRENT_MODIFICATION"

    # ── Business Rule Violations (422) ────────────────────────────────────
    INVALID_SPLIT              = "INVALID_SPLIT"
    INVALID_SETTLEMENT         = "INVALID_SETTLEMENT"

    # ── System Errors ──────────────────────────────────────────────────────
    STORE_UNAVAILABLE          = "STORE_UNAVAILABLE"      # 503
    INTERNAL_ERROR             = "INTERNAL_ERROR"         # 500


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # sum(balances) != 0 beyond epsilon: an upstream ledger bug. Planning
    # still runs on the data as given.
    BALANCE_SUM_NONZERO   = "BALANCE_SUM_NONZERO"

    # The planner left a debtor or creditor with no counterparty.
    UNMATCHED_RESIDUAL    = "UNMATCHED_RESIDUAL"

    # An exact split whose amounts do not add up to the expense total.
    # Recorded as given.
    EXACT_SPLIT_MISMATCH  = "EXACT_SPLIT_MISMATCH"

    # Payer amounts do not add up to the expense total. Recorded as given.
    PAYER_SUM_MISMATCH    = "PAYER_SUM_MISMATCH"

    # The balance write committed but the member summaries did not.
    SUMMARY_UPDATE_FAILED = "SUMMARY_UPDATE_FAILED"


def make_warning(code: str, message: str, **context) -> dict:
    """Builds a warning dict in the shape used by every `warnings` list."""
    warning = {"code": code, "message": message}
    if context:
        warning["context"] = context
    return warning
