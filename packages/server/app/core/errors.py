"""
Error taxonomy and the Ok/Err result type.

Services return ``Ok(value)`` or ``Err(code)`` for expected business
failures. Routers turn an ``Err`` into an ``AuthError`` with ``unwrap``; the
exception handlers registered in ``app.main`` render every failure with the
same envelope::

    {"error": {"code": "TOKEN_EXPIRED", "message": "...", "status": 401}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from starlette.responses import JSONResponse


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    INVALID_JOIN_CODE = "INVALID_JOIN_CODE"
    INVALID_GOOGLE_TOKEN = "INVALID_GOOGLE_TOKEN"
    MISSING_TOKEN = "MISSING_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    UNAUTHORIZED_ORG = "UNAUTHORIZED_ORG"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    USER_ORG_UNLINKED = "USER_ORG_UNLINKED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    FORBIDDEN = "FORBIDDEN"
    DUPLICATE_MEMBERSHIP = "DUPLICATE_MEMBERSHIP"
    LAST_MEMBERSHIP = "LAST_MEMBERSHIP"
    LAST_ADMIN = "LAST_ADMIN"
    ADMIN_LIMIT_REACHED = "ADMIN_LIMIT_REACHED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INVALID_VERIFICATION_TOKEN = "INVALID_VERIFICATION_TOKEN"
    INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.EMAIL_NOT_VERIFIED: 401,
    ErrorCode.EMAIL_ALREADY_REGISTERED: 409,
    ErrorCode.INVALID_JOIN_CODE: 400,
    ErrorCode.INVALID_GOOGLE_TOKEN: 401,
    ErrorCode.MISSING_TOKEN: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.TOKEN_INVALID: 403,
    ErrorCode.UNAUTHORIZED_ORG: 401,
    ErrorCode.NOT_A_MEMBER: 400,
    ErrorCode.USER_ORG_UNLINKED: 401,
    ErrorCode.INVALID_REFRESH_TOKEN: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.DUPLICATE_MEMBERSHIP: 409,
    ErrorCode.LAST_MEMBERSHIP: 409,
    ErrorCode.LAST_ADMIN: 409,
    ErrorCode.ADMIN_LIMIT_REACHED: 409,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.INVALID_VERIFICATION_TOKEN: 400,
    ErrorCode.INVALID_RESET_TOKEN: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
}

DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Validation failed",
    ErrorCode.INVALID_CREDENTIALS: "Invalid email or password",
    ErrorCode.EMAIL_NOT_VERIFIED: "Please verify your email before signing in",
    ErrorCode.EMAIL_ALREADY_REGISTERED: "Email already registered",
    ErrorCode.INVALID_JOIN_CODE: "The organization code is not valid",
    ErrorCode.INVALID_GOOGLE_TOKEN: "Google sign-in could not be verified",
    ErrorCode.MISSING_TOKEN: "Access token required",
    ErrorCode.TOKEN_EXPIRED: "Access token expired",
    ErrorCode.TOKEN_INVALID: "Invalid token",
    ErrorCode.UNAUTHORIZED_ORG: "You no longer have access to this organization",
    ErrorCode.NOT_A_MEMBER: "You do not have access to this organization",
    ErrorCode.USER_ORG_UNLINKED: "User is not linked to an organization",
    ErrorCode.INVALID_REFRESH_TOKEN: "Invalid refresh token",
    ErrorCode.FORBIDDEN: "You do not have permission for this action",
    ErrorCode.DUPLICATE_MEMBERSHIP: "User is already a member of this organization",
    ErrorCode.LAST_MEMBERSHIP: "A user must belong to at least one organization",
    ErrorCode.LAST_ADMIN: "An organization must keep at least one administrator",
    ErrorCode.ADMIN_LIMIT_REACHED: "An organization can have at most 3 administrators",
    ErrorCode.USER_NOT_FOUND: "User not found",
    ErrorCode.INVALID_VERIFICATION_TOKEN: "Invalid or expired verification token",
    ErrorCode.INVALID_RESET_TOKEN: "Invalid or expired reset token",
    ErrorCode.NOT_FOUND: "Not found",
    ErrorCode.RATE_LIMITED: "Too many requests, try again later",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    code: ErrorCode
    message: str = field(default="")

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", DEFAULT_MESSAGES[self.code])


Result = Union[Ok[T], Err]


class AuthError(Exception):
    """An expected failure on its way to the client."""

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        details: Optional[list[str]] = None,
    ):
        self.code = code
        self.message = message or DEFAULT_MESSAGES[code]
        self.status = status or ERROR_STATUS[code]
        self.details = details
        super().__init__(self.message)

    @classmethod
    def from_err(cls, err: Err, *, status: Optional[int] = None) -> "AuthError":
        return cls(err.code, err.message, status=status)

    def to_response(self) -> JSONResponse:
        return error_response(self.code, self.message, self.status, self.details)


def error_response(
    code: ErrorCode,
    message: Optional[str] = None,
    status: Optional[int] = None,
    details: Optional[list[str]] = None,
) -> JSONResponse:
    status = status or ERROR_STATUS[code]
    body: dict = {
        "code": code.value,
        "message": message or DEFAULT_MESSAGES[code],
        "status": status,
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status, content={"error": body})


def unwrap(result: Result[T], *, status_overrides: Optional[dict[ErrorCode, int]] = None) -> T:
    """Return the value of an ``Ok`` or raise the matching ``AuthError``."""
    if isinstance(result, Err):
        status = (status_overrides or {}).get(result.code)
        raise AuthError.from_err(result, status=status)
    return result.value
