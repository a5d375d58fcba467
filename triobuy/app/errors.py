"""
errors.py — AppError base class and error code registry.

Every error returned by the TrioBuy API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Every code belongs to exactly one ErrorKind. Clients branch on the kind:
    UPSTREAM_FAILURE means retry later, CONFLICT / INVALID_STATE mean do not
    retry, UNAUTHENTICATED means re-authenticate.
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

    @property
    def kind(self) -> str:
        return error_kind(self.code)

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "kind":    self.kind,
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


# ── Error Kinds ────────────────────────────────────────────────────────────

class ErrorKind:
    INVALID_INPUT    = "INVALID_INPUT"      # 400
    UNAUTHENTICATED  = "UNAUTHENTICATED"    # 401
    NOT_FOUND        = "NOT_FOUND"          # 404
    CONFLICT         = "CONFLICT"           # 409
    INVALID_STATE    = "INVALID_STATE"      # 422
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"   # 502
    INTERNAL         = "INTERNAL"           # 500


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by kind. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_PROVIDER           = "INVALID_PROVIDER"
    INVALID_LANGUAGE           = "INVALID_LANGUAGE"

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    INIT_DATA_INVALID          = "INIT_DATA_INVALID"
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"
    CALLBACK_SIGNATURE_INVALID = "CALLBACK_SIGNATURE_INVALID"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    PRODUCT_NOT_FOUND          = "PRODUCT_NOT_FOUND"
    INVITE_CODE_NOT_FOUND      = "INVITE_CODE_NOT_FOUND"
    PAYMENT_NOT_FOUND          = "PAYMENT_NOT_FOUND"
    TRANSACTION_NOT_FOUND      = "TRANSACTION_NOT_FOUND"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_PARTICIPANT      = "DUPLICATE_PARTICIPANT"
    TRANSACTION_ALREADY_BOUND  = "TRANSACTION_ALREADY_BOUND"
    INVITE_CODE_REDEEMED       = "INVITE_CODE_REDEEMED"
    GROUP_FULL                 = "GROUP_FULL"

    # ── Invalid State Errors (422) ─────────────────────────────────────────
    # The group or payment has already reached a terminal state.
    GROUP_CLOSED               = "GROUP_CLOSED"
    PAYMENT_ALREADY_PAID       = "PAYMENT_ALREADY_PAID"

    # ── Upstream Errors (502) ──────────────────────────────────────────────
    GATEWAY_ERROR              = "GATEWAY_ERROR"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


_KIND_BY_CODE: dict[str, str] = {
    ErrorCode.MISSING_FIELD:              ErrorKind.INVALID_INPUT,
    ErrorCode.INVALID_FIELD:              ErrorKind.INVALID_INPUT,
    ErrorCode.INVALID_PROVIDER:           ErrorKind.INVALID_INPUT,
    ErrorCode.INVALID_LANGUAGE:           ErrorKind.INVALID_INPUT,

    ErrorCode.INIT_DATA_INVALID:          ErrorKind.UNAUTHENTICATED,
    ErrorCode.TOKEN_MISSING:              ErrorKind.UNAUTHENTICATED,
    ErrorCode.TOKEN_INVALID:              ErrorKind.UNAUTHENTICATED,
    ErrorCode.TOKEN_EXPIRED:              ErrorKind.UNAUTHENTICATED,
    ErrorCode.CALLBACK_SIGNATURE_INVALID: ErrorKind.UNAUTHENTICATED,

    ErrorCode.USER_NOT_FOUND:             ErrorKind.NOT_FOUND,
    ErrorCode.GROUP_NOT_FOUND:            ErrorKind.NOT_FOUND,
    ErrorCode.PRODUCT_NOT_FOUND:          ErrorKind.NOT_FOUND,
    ErrorCode.INVITE_CODE_NOT_FOUND:      ErrorKind.NOT_FOUND,
    ErrorCode.PAYMENT_NOT_FOUND:          ErrorKind.NOT_FOUND,
    ErrorCode.TRANSACTION_NOT_FOUND:      ErrorKind.NOT_FOUND,

    ErrorCode.DUPLICATE_PARTICIPANT:      ErrorKind.CONFLICT,
    ErrorCode.TRANSACTION_ALREADY_BOUND:  ErrorKind.CONFLICT,
    ErrorCode.INVITE_CODE_REDEEMED:       ErrorKind.CONFLICT,
    ErrorCode.GROUP_FULL:                 ErrorKind.CONFLICT,

    ErrorCode.GROUP_CLOSED:               ErrorKind.INVALID_STATE,
    ErrorCode.PAYMENT_ALREADY_PAID:       ErrorKind.INVALID_STATE,

    ErrorCode.GATEWAY_ERROR:              ErrorKind.UPSTREAM_FAILURE,

    ErrorCode.INTERNAL_ERROR:             ErrorKind.INTERNAL,
}


def error_kind(code: str) -> str:
    """Returns the ErrorKind for a registered code; unknown codes are INTERNAL."""
    return _KIND_BY_CODE.get(code, ErrorKind.INTERNAL)
