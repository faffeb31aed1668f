"""
errors.py — AppError base class, error code registry and notice codes.

Every error returned by the SplitChat API or raised by the ledger core must
use a code defined here. Do not raise strings or generic exceptions from
service, ledger or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Not-found conditions on ledger mutations are NOT errors: they are benign
    no-ops reported through NoticeCode (idempotent replay depends on this).
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
        self.field       = field  # which request field caused the error

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


class TransportError(Exception):
    """Raised by a transport when a message cannot be handed to the connection."""


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    EMPTY_DEBTOR_SELECTION     = "EMPTY_DEBTOR_SELECTION"
    AMBIGUOUS_DEBTORS          = "AMBIGUOUS_DEBTORS"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    EVENT_ALREADY_OPEN         = "EVENT_ALREADY_OPEN"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    SELF_DEBT                  = "SELF_DEBT"
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    DEBTOR_NOT_MEMBER          = "DEBTOR_NOT_MEMBER"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    NO_ACTIVE_EVENT            = "NO_ACTIVE_EVENT"
    PAYMENT_HANDLE_MISSING     = "PAYMENT_HANDLE_MISSING"

    # ── Identity Errors ────────────────────────────────────────────────────
    # 401 = no caller identity on the request
    # 403 = caller known, but not a member / not the admin
    IDENTITY_MISSING           = "IDENTITY_MISSING"       # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Notice Code Registry ───────────────────────────────────────────────────
#
# Notices are returned alongside a successful response in the `warnings`
# array (HTTP) or in LedgerOutcome.notices (client facade). They never block
# the request and never roll anything back.
# ──────────────────────────────────────────────────────────────────────────

class NoticeCode:

    NO_ACTIVE_EVENT   = "NO_ACTIVE_EVENT"     # add on a group without an event
    DUPLICATE_EXPENSE = "DUPLICATE_EXPENSE"   # retried add with a known id
    EXPENSE_NOT_FOUND = "EXPENSE_NOT_FOUND"   # update/remove on an unknown id
    UNCHANGED         = "UNCHANGED"           # update with identical values
    NOTHING_TO_SETTLE = "NOTHING_TO_SETTLE"   # settle found no matching entries
    BROADCAST_FAILED  = "BROADCAST_FAILED"    # local change stands, peers not told


def notice(code: str, message: str) -> dict:
    """Builds one entry of a `warnings` / notices list."""
    return {"code": code, "message": message}
