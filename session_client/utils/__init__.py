"""Shared utility functions and models for the session client.

Convenience re-exports so consumers can import directly from
``session_client.utils`` while full module imports remain supported.
"""

from session_client.utils.audit import SecurityAction, SecurityEvent, log_security_event
from session_client.utils.string_helpers import normalize_keys, to_snake_case

__all__ = [
    "SecurityAction",
    "SecurityEvent",
    "log_security_event",
    "normalize_keys",
    "to_snake_case",
]
