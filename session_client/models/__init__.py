from __future__ import annotations

"""
Data Models Package.

Re-exports all models for short imports:
    from session_client.models import RequestOptions, ApiResult, ErrorCode
"""

from session_client.models.enums import (
    DispatchState,
    ErrorCode,
    HttpMethod,
    LogoutReason,
    ResponseKind,
)
from session_client.models.request_models import (
    BatchRequest,
    FormData,
    RequestDescriptor,
    RequestOptions,
)
from session_client.models.response_models import (
    ApiResult,
    DispatchStats,
    ErrorBody,
    HealthStatus,
    RefreshResponse,
    ResponseClassification,
)
from session_client.models.user import CurrentUser

__all__ = [
    "ApiResult",
    "BatchRequest",
    "CurrentUser",
    "DispatchState",
    "DispatchStats",
    "ErrorBody",
    "ErrorCode",
    "FormData",
    "HealthStatus",
    "HttpMethod",
    "LogoutReason",
    "RefreshResponse",
    "RequestDescriptor",
    "RequestOptions",
    "ResponseClassification",
    "ResponseKind",
]
