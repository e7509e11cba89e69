"""
Response Classification.

Turns one physical attempt (a response or a transport exception) into a
``ResponseClassification``.  Pure functions: no I/O beyond reading the
already-buffered response body, no side effects.
"""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from session_client.models.enums import ErrorCode, ResponseKind
from session_client.models.response_models import ErrorBody, ResponseClassification

_STEP_UP_EXPIRED_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TOTP_VERIFICATION_REQUIRED,
    ErrorCode.TOTP_VERIFICATION_EXPIRED,
})


def parse_error_body(response: httpx.Response) -> ErrorBody:
    """Parse the JSON envelope of *response*, never raising.

    Non-JSON bodies, non-object JSON and envelopes with unexpected field
    types all come back as an empty ``ErrorBody``.
    """
    try:
        payload = response.json()
    except ValueError:
        return ErrorBody()
    if not isinstance(payload, dict):
        return ErrorBody()
    try:
        return ErrorBody.model_validate(payload)
    except ValidationError:
        return ErrorBody()


def classify_response(response: httpx.Response) -> ResponseClassification:
    """Classify a received response.

    Only 401 and 403 bodies are inspected; every other status is decided
    by its range alone.
    """
    status = response.status_code

    if response.is_success:
        return ResponseClassification(kind=ResponseKind.SUCCESS, status=status)

    if status == 403:
        code = parse_error_body(response).error_code
        if code in _STEP_UP_EXPIRED_CODES:
            return ResponseClassification(kind=ResponseKind.TOTP_EXPIRED, status=status, code=code)
        if code is ErrorCode.TOTP_REQUIRED:
            return ResponseClassification(kind=ResponseKind.TOTP_REQUIRED, status=status, code=code)
        return ResponseClassification(kind=ResponseKind.CLIENT_ERROR, status=status, code=code)

    if status == 401:
        code = parse_error_body(response).error_code
        if code is ErrorCode.ACCESS_TOKEN_EXPIRED:
            return ResponseClassification(kind=ResponseKind.AUTH_EXPIRED, status=status, code=code)
        return ResponseClassification(kind=ResponseKind.SESSION_INVALID, status=status, code=code)

    if status >= 500:
        return ResponseClassification(kind=ResponseKind.SERVER_ERROR, status=status)

    # Remaining 1xx/3xx/4xx: definitive, handed back untouched.
    return ResponseClassification(kind=ResponseKind.CLIENT_ERROR, status=status)


def classify_exception(exc: httpx.TransportError) -> ResponseClassification:
    """Classify a connectivity failure raised by the transport."""
    return ResponseClassification(kind=ResponseKind.NETWORK_ERROR, cause=repr(exc))
