"""
Response Models.

Pydantic models for everything the client derives from a response:
the leniently-parsed error body, the per-attempt classification, and
the flat results handed back to calling code.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from session_client.models.enums import ErrorCode, ResponseKind

_KNOWN_CODES: frozenset[str] = frozenset(ErrorCode)


# ---------------------------------------------------------------------------
# Error body
# ---------------------------------------------------------------------------

class ErrorBody(BaseModel):
    """The ``{error?, code?, message?, data?}`` envelope of a JSON response.

    Unknown keys are dropped; a body that cannot be parsed at all is
    represented by an empty ``ErrorBody()``.
    """

    error: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None
    data: Optional[object] = None

    model_config = {"extra": "ignore"}

    @property
    def error_code(self) -> Optional[ErrorCode]:
        """First recognised code, looking at ``code`` before ``error``."""
        for candidate in (self.code, self.error):
            if candidate in _KNOWN_CODES:
                return ErrorCode(candidate)
        return None

    @property
    def description(self) -> Optional[str]:
        """Best human-readable text in the body."""
        return self.message or self.error


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class ResponseClassification(BaseModel):
    """Tagged result of one physical attempt.

    Attributes
    ----------
    kind:
        The classification tag.
    status:
        HTTP status, ``None`` for ``NETWORK_ERROR``.
    code:
        Recognised backend error code, when one was present.
    cause:
        ``repr`` of the transport exception for ``NETWORK_ERROR``.
    """

    kind: ResponseKind
    status: Optional[int] = None
    code: Optional[ErrorCode] = None
    cause: Optional[str] = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Results handed to callers
# ---------------------------------------------------------------------------

class ApiResult(BaseModel):
    """Flat result returned by the convenience wrappers; they never raise."""

    success: bool
    status: int
    data: Optional[object] = None
    error: Optional[str] = None


class HealthStatus(BaseModel):
    """Outcome of ``ApiClient.health_check``."""

    healthy: bool
    status: Optional[int] = None
    data: Optional[object] = None
    error: Optional[str] = None


class RefreshResponse(BaseModel):
    """Body returned by the refresh endpoint on success."""

    success: bool = True
    csrf_token: Optional[str] = Field(default=None, alias="csrfToken")

    model_config = {"extra": "ignore", "populate_by_name": True}


class DispatchStats(BaseModel):
    """Running counters kept by ``RequestDispatcher``."""

    calls: int = 0
    physical_attempts: int = 0
    backoff_retries: int = 0
    auth_redispatches: int = 0
    refreshes_requested: int = 0
    session_checks: int = 0
    forced_logouts: int = 0
    step_up_redirects: int = 0
    network_failures: int = 0
