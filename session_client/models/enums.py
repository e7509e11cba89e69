"""
Shared Enumerations for Session Client Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, so a raw
backend value like ``"ACCESS_TOKEN_EXPIRED"`` matches the member directly.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """Backend error codes the dispatcher reacts to.

    ``TOTP_VERIFICATION_REQUIRED`` / ``TOTP_VERIFICATION_EXPIRED`` mean the
    step-up session is missing or stale; ``TOTP_REQUIRED`` means the
    account has no second factor configured at all.
    """

    ACCESS_TOKEN_EXPIRED = "ACCESS_TOKEN_EXPIRED"
    TOTP_VERIFICATION_REQUIRED = "TOTP_VERIFICATION_REQUIRED"
    TOTP_VERIFICATION_EXPIRED = "TOTP_VERIFICATION_EXPIRED"
    TOTP_REQUIRED = "TOTP_REQUIRED"


class ResponseKind(StrEnum):
    """Classification tag computed once per physical attempt."""

    SUCCESS = "SUCCESS"
    CLIENT_ERROR = "CLIENT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    SESSION_INVALID = "SESSION_INVALID"
    TOTP_REQUIRED = "TOTP_REQUIRED"
    TOTP_EXPIRED = "TOTP_EXPIRED"


class HttpMethod(StrEnum):
    """HTTP verbs issued by the client."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class LogoutReason(StrEnum):
    """Why a forced logout was triggered."""

    SESSION_INVALID = "SESSION_INVALID"
    REFRESH_FAILED = "REFRESH_FAILED"
    REPEATED_UNAUTHORIZED = "REPEATED_UNAUTHORIZED"
    MANUAL = "MANUAL"


class DispatchState(StrEnum):
    """Per-call dispatch generation.

    ``SENDING_GEN1`` is entered at most once, after a successful token
    refresh or session check; from there the only exit is ``DONE``.
    """

    SENDING_GEN0 = "SENDING_GEN0"
    SENDING_GEN1 = "SENDING_GEN1"
    DONE = "DONE"
