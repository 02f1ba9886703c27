"""
errors.py — AppError base class and error code registry.

Every error returned by the SplitSmart API must use a code defined here.
Do not raise strings or generic exceptions from ledger, service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (no identity) with 403 (identity known, not allowed).
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


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    # The ledger engine raises these too, before any accumulation begins.
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_SCOPE_TYPE         = "INVALID_SCOPE_TYPE"
    INVALID_FREQUENCY          = "INVALID_FREQUENCY"
    INVALID_ENTITY_TYPE        = "INVALID_ENTITY_TYPE"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    ROUTE_NOT_FOUND            = "ROUTE_NOT_FOUND"

    # ── Method Errors (405) ────────────────────────────────────────────────
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"
    RECIPIENT_NOT_MEMBER       = "RECIPIENT_NOT_MEMBER"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"

    # ── Identity / Permission Errors ───────────────────────────────────────
    # 401 = we do not know who you are (no X-User-Email header)
    # 403 = we know who you are, but you are not allowed
    IDENTITY_MISSING           = "IDENTITY_MISSING"       # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors ──────────────────────────────────────────────────────
    NOTIFICATIONS_UNAVAILABLE  = "NOTIFICATIONS_UNAVAILABLE"  # 503
    INTERNAL_ERROR             = "INTERNAL_ERROR"             # 500


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Settlement amount exceeds the current outstanding debt between the
    # parties. Still recorded — pre-payment is valid.
    OVERPAYMENT = "OVERPAYMENT"

    # The ledger skipped inconsistent records while computing a response.
    DATA_INCONSISTENCY = "DATA_INCONSISTENCY"
