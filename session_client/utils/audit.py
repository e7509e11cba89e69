"""
Security Audit Logging Utility.

Every session-level side effect (forced logout, step-up redirect, token
refresh) is logged as a structured JSON object.  Provides a
Pydantic-validated model and a single function for consistent entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel, Field

from session_client.logger import StructuredLogger

__all__ = ["SecurityAction", "SecurityEvent", "log_security_event"]

# Scalar type permitted inside the ``details`` mapping.  Kept flat:
# nested structures should be modelled explicitly.
DetailValue = Union[str, int, float, bool, None]


class SecurityAction(StrEnum):
    FORCED_LOGOUT = "FORCED_LOGOUT"
    STEP_UP_REDIRECT = "STEP_UP_REDIRECT"
    TOTP_SETUP_REDIRECT = "TOTP_SETUP_REDIRECT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


class SecurityEvent(BaseModel):
    """Schema-validated representation of a single audit entry."""

    timestamp: str
    action: SecurityAction
    reason: str
    url: Optional[str] = None
    user_id: Optional[str] = None
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_security_event(
    logger: StructuredLogger,
    action: SecurityAction,
    reason: str,
    url: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[dict[str, DetailValue]] = None,
) -> SecurityEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened.
        reason: Why it happened (a ``LogoutReason`` or ``ErrorCode`` value).
        url: The request URL that led to the event, when there is one.
        user_id: ID of the session user, when known.
        details: Optional additional flat context.
    """
    event = SecurityEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        reason=reason,
        url=url,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(mode="json"), default=str))
    return event
