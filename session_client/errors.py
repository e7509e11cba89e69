"""
Client Exceptions.

Only two situations escape the dispatcher as exceptions: the transient
retry budget running out, and asking for a user that was never loaded.
Everything else (auth recovery, forced logout, step-up redirects) is
handled in place and surfaces as an ordinary response.
"""

from __future__ import annotations

from typing import Optional

import httpx


class SessionClientError(Exception):
    """Base class for errors raised by the session client."""


class NetworkFailure(SessionClientError):
    """Raised once connectivity failures or 5xx responses exhaust the
    retry budget.

    The transport exception of the final attempt (if any) is chained as
    ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        method: str,
        url: str,
        attempts: int,
        response: Optional[httpx.Response] = None,
    ) -> None:
        self.message: str = message
        self.method: str = method
        self.url: str = url
        self.attempts: int = attempts
        self.response: Optional[httpx.Response] = response
        super().__init__(self.message)

    @property
    def status(self) -> Optional[int]:
        """Status of the last response, ``None`` if none was received."""
        return self.response.status_code if self.response is not None else None


class SessionNotEstablishedError(SessionClientError):
    """Raised when the current user is requested before it was loaded."""
